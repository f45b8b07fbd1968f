# rbac_engine/services/exceptions.py

# --- Not Found Exceptions ---
class AccountNotFoundError(Exception):
    """계정을 찾을 수 없을 때"""
    pass

class RoleNotFoundError(Exception):
    """역할을 찾을 수 없을 때"""
    pass

class PermissionNotFoundError(Exception):
    """권한을 찾을 수 없을 때"""
    pass

class PermissionGroupNotFoundError(Exception):
    """권한 그룹을 찾을 수 없을 때"""
    pass

# --- Validation Exceptions ---
class ValidationError(Exception):
    """입력값(경로, rank, scope 조합 등)이 잘못되었을 때. 평가 전에 거부됩니다."""
    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message

class RoleInUseError(Exception):
    """참조 중인 역할을 삭제하려고 할 때"""
    pass

class PermissionInUseError(Exception):
    """역할/그룹에서 참조 중인 권한을 삭제하려고 할 때"""
    pass

# --- Authorization Exceptions ---
class RankExceeded(Exception):
    """행위자의 최대 rank를 넘는 역할 부여/수정을 시도할 때"""
    def __init__(self, actor_rank, requested_rank):
        super().__init__(
            f"Requested rank {requested_rank} exceeds the actor's maximum role rank {actor_rank}."
        )
        self.actor_rank = actor_rank
        self.requested_rank = requested_rank

class PermissionDenied(Exception):
    """
    평가 결과가 '거부'일 때.
    감사(audit)에 필요한 네임스페이스/대상/액션만 담고, 다른 권한의 존재 여부는 노출하지 않습니다.
    """
    def __init__(self, namespace: str, target: str, action: str, detail: str = None):
        message = f"Access denied: insufficient permissions for {action} on {namespace}/{target}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.namespace = namespace
        self.target = target
        self.action = action

class QueryFailure(Exception):
    """권한 저장소나 스토리지 백엔드를 조회할 수 없을 때. 평가 경계에서 항상 거부로 변환됩니다."""
    pass

class EvaluationCancelled(QueryFailure):
    """호출자가 평가/탐색을 취소했을 때. QueryFailure와 동일하게 거부로 취급합니다."""
    pass

class CapacityExceeded(Exception):
    """하위 트리 탐색이나 배치 크기가 설정된 한도를 넘었을 때"""
    pass
