"""
역할 부여 및 역할 rank 변경 시 권한 상승(privilege escalation)을 막는 비교 게이트.

부수 효과가 없으며, 역할/할당을 변경하는 모든 작업이 커밋되기 전에 호출됩니다.
같은 rank의 부여는 허용되지만, 호출자는 is_same_rank_elevation()으로 경고를 표시해야 합니다.
"""
from typing import Optional

from rbac_engine.services.exceptions import RankExceeded, ValidationError


def _validate_rank(field: str, rank) -> None:
    # bool은 int의 하위 타입이므로 따로 거부합니다.
    if isinstance(rank, bool) or not isinstance(rank, int):
        raise ValidationError(field, 'Rank must be an integer.')
    if rank < 0:
        raise ValidationError(field, 'Rank must be greater than or equal to 0.')


def _within_authority(actor_max_rank: Optional[int], requested_rank: int, field: str) -> bool:
    _validate_rank(field, requested_rank)
    if actor_max_rank is None:
        # 역할이 없는 행위자는 어떤 역할도 부여/수정할 수 없습니다.
        return False
    _validate_rank('actor_max_rank', actor_max_rank)
    return requested_rank <= actor_max_rank


def can_assign(assigner_max_rank: Optional[int], target_role_rank: int) -> bool:
    """부여 대상 역할의 rank가 부여자의 최대 rank 이하이면 True."""
    return _within_authority(assigner_max_rank, target_role_rank, 'target_role_rank')


def can_create_or_modify_role(assigner_max_rank: Optional[int], desired_rank: int) -> bool:
    """생성/수정하려는 역할의 rank가 행위자의 최대 rank 이하이면 True."""
    return _within_authority(assigner_max_rank, desired_rank, 'rank')


def check_can_assign(assigner_max_rank: Optional[int], target_role_rank: int) -> None:
    """
    Raises:
        RankExceeded: 부여 대상 역할의 rank가 부여자의 최대 rank를 넘을 때.
    """
    if not can_assign(assigner_max_rank, target_role_rank):
        raise RankExceeded(assigner_max_rank, target_role_rank)


def check_can_create_or_modify_role(assigner_max_rank: Optional[int], desired_rank: int) -> None:
    """
    Raises:
        RankExceeded: 원하는 rank가 행위자의 최대 rank를 넘을 때.
    """
    if not can_create_or_modify_role(assigner_max_rank, desired_rank):
        raise RankExceeded(assigner_max_rank, desired_rank)


def is_same_rank_elevation(assigner_max_rank: Optional[int], target_role_rank: int) -> bool:
    """부여받는 쪽이 부여자와 같은 지위가 되는 경우 True (UI 경고용, 거부 사유가 아님)."""
    return assigner_max_rank is not None and assigner_max_rank == target_role_rank


def outranks(actor_max_rank: Optional[int], other_rank: Optional[int]) -> bool:
    """
    행위자가 다른 대상보다 엄격하게 높은 rank를 가지면 True.
    역할이 없는 대상의 rank는 0으로 취급합니다.
    """
    if actor_max_rank is None:
        return False
    return actor_max_rank > (other_rank if other_rank is not None else 0)
