import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from rbac_engine.database import models
from rbac_engine.database.models import Action, SystemResource
from rbac_engine.repositories.interfaces import (
    IAccountRepository, IPermissionGroupRepository, IPermissionRepository, IRoleRepository
)
from rbac_engine.services import rank_guard
from rbac_engine.services.authorization_service import AuthorizationService
from rbac_engine.services.exceptions import (
    AccountNotFoundError, PermissionGroupNotFoundError, PermissionNotFoundError,
    RankExceeded, RoleInUseError, RoleNotFoundError, ValidationError
)
from rbac_engine.services.permission_cache import PermissionSetCache

logger = logging.getLogger(__name__)


class RoleService:
    """역할 정의, 계정-역할 할당, 역할-권한/그룹 연결을 관리하는 서비스입니다."""

    def __init__(
        self,
        account_repo: IAccountRepository,
        role_repo: IRoleRepository,
        permission_repo: IPermissionRepository,
        group_repo: IPermissionGroupRepository,
        authorization_service: AuthorizationService,
        cache: Optional[PermissionSetCache] = None,
    ):
        """
        RoleService를 초기화합니다.

        Args:
            account_repo: 계정과 계정-역할 할당에 접근하기 위한 리포지토리.
            role_repo: 역할 데이터에 접근하기 위한 리포지토리.
            permission_repo: 역할에 부여할 권한을 조회하기 위한 리포지토리.
            group_repo: 역할에 연결할 권한 그룹을 조회하기 위한 리포지토리.
            authorization_service: 행위자의 시스템 권한을 평가하는 서비스.
            cache: 변경 시 비워야 하는 유효 권한 캐시. None이면 authorization_service의 캐시를 사용합니다.
        """
        self.account_repo = account_repo
        self.role_repo = role_repo
        self.permission_repo = permission_repo
        self.group_repo = group_repo
        self.authorization_service = authorization_service
        self.cache = cache if cache is not None else authorization_service.cache

    # --- 내부 헬퍼 ---

    def _invalidate(self):
        if self.cache is not None:
            self.cache.invalidate_all()

    def _get_role(self, role_id: int) -> models.Role:
        role = self.role_repo.find_by_id(role_id)
        if not role:
            raise RoleNotFoundError(f"Role with id '{role_id}' not found.")
        return role

    def _get_account(self, account_id: int) -> models.Account:
        account = self.account_repo.find_by_id(account_id)
        if not account:
            raise AccountNotFoundError(f"Account with id '{account_id}' not found.")
        return account

    def _require_higher_rank_than_role(self, actor_id: int, role: models.Role) -> int:
        actor_rank = self.account_repo.get_max_role_rank(actor_id)
        if not rank_guard.outranks(actor_rank, role.rank):
            raise RankExceeded(actor_rank, role.rank)
        return actor_rank

    @staticmethod
    def _role_to_dict(role: models.Role) -> Dict[str, Any]:
        return {"id": role.id, "name": role.name, "description": role.description, "rank": role.rank}

    # --- 역할 정의 ---

    def create_role(self, actor_id: int, name: str, rank: int, description: Optional[str] = None) -> Dict[str, Any]:
        """
        새로운 역할을 생성합니다. 행위자의 최대 rank보다 높은 rank는 만들 수 없습니다.

        Raises:
            PermissionDenied: 행위자에게 role insert 권한이 없을 때.
            RankExceeded: rank가 행위자의 최대 rank를 넘을 때.
            ValidationError: 이름이 비었거나 중복일 때, rank가 음수일 때.
        """
        self.authorization_service.validate_system_or_fail(actor_id, SystemResource.ROLE.value, Action.INSERT.value)
        if not name:
            raise ValidationError('name', 'This field is required.')
        actor_rank = self.account_repo.get_max_role_rank(actor_id)
        rank_guard.check_can_create_or_modify_role(actor_rank, rank)
        if self.role_repo.find_by_name(name):
            raise ValidationError('name', f"Role with name '{name}' already exists.")

        created = self.role_repo.create(models.Role(name=name, rank=rank, description=description))
        self._invalidate()
        logger.info("Role '%s' (rank %d) created by account %s", name, rank, actor_id)
        return self._role_to_dict(created)

    def update_role(self, actor_id: int, role_id: int, name: Optional[str] = None,
                    description: Optional[str] = None, rank: Optional[int] = None) -> Dict[str, Any]:
        """
        역할의 이름, 설명, rank를 변경합니다. 현재 rank와 새 rank 모두 행위자의 최대 rank 이하여야 합니다.

        Raises:
            RoleNotFoundError: 해당 ID의 역할을 찾을 수 없을 때.
            RankExceeded: 현재 또는 새 rank가 행위자의 최대 rank를 넘을 때.
            ValidationError: 새 이름이 다른 역할과 중복될 때. 이 경우 역할은 변경되지 않습니다.
        """
        self.authorization_service.validate_system_or_fail(actor_id, SystemResource.ROLE.value, Action.UPDATE.value)
        role = self._get_role(role_id)
        actor_rank = self.account_repo.get_max_role_rank(actor_id)
        rank_guard.check_can_create_or_modify_role(actor_rank, role.rank)
        if rank is not None:
            rank_guard.check_can_create_or_modify_role(actor_rank, rank)
        renamed = name is not None and name != role.name
        if renamed and self.role_repo.find_by_name(name):
            raise ValidationError('name', f"Role with name '{name}' already exists.")

        # 세션에 묶인 모델이므로 모든 검사가 끝난 뒤에만 변경합니다.
        if rank is not None:
            role.rank = rank
        if renamed:
            role.name = name
        if description is not None:
            role.description = description

        updated = self.role_repo.update(role)
        self._invalidate()
        return self._role_to_dict(updated)

    def delete_role(self, actor_id: int, role_id: int) -> bool:
        """
        역할을 삭제합니다. 자신보다 rank가 낮고, 자신이 보유하지 않았으며, 할당된 계정이 없는 역할만 삭제 가능합니다.

        Raises:
            RoleNotFoundError: 해당 ID의 역할을 찾을 수 없을 때.
            RankExceeded: 역할의 rank가 행위자보다 낮지 않을 때.
            ValidationError: 행위자가 보유한 역할일 때.
            RoleInUseError: 역할이 할당된 계정이 있을 때.
        """
        self.authorization_service.validate_system_or_fail(actor_id, SystemResource.ROLE.value, Action.DELETE.value)
        role = self._get_role(role_id)
        self._require_higher_rank_than_role(actor_id, role)
        if self.account_repo.has_role(actor_id, role.id):
            raise ValidationError('role_id', 'Cannot delete a role you hold.')
        if self.role_repo.count_assignments(role.id) > 0:
            raise RoleInUseError(f"Role '{role.name}' is still assigned to accounts.")

        self.role_repo.delete(role)
        self._invalidate()
        logger.info("Role '%s' deleted by account %s", role.name, actor_id)
        return True

    # --- 계정-역할 할당 ---

    def _check_account_action(self, actor_id: int, account_id: int, role: models.Role) -> int:
        actor_rank = self.account_repo.get_max_role_rank(actor_id)
        rank_guard.check_can_assign(actor_rank, role.rank)
        if actor_id == account_id:
            # 자기 자신에게는 현재 지위보다 낮은 역할만 다룰 수 있습니다.
            if role.rank >= actor_rank:
                raise RankExceeded(actor_rank, role.rank)
        else:
            target_rank = self.account_repo.get_max_role_rank(account_id)
            if not rank_guard.outranks(actor_rank, target_rank):
                raise RankExceeded(actor_rank, target_rank)
        return actor_rank

    def assign_role(self, actor_id: int, account_id: int, role_id: int,
                    valid_until: Optional[datetime] = None) -> Dict[str, Any]:
        """
        계정에 역할을 부여합니다. 계정의 기존 역할은 교체됩니다.

        Returns:
            {'account_id', 'role', 'rank', 'same_rank_warning'}
            same_rank_warning이 True이면 부여받는 계정이 행위자와 같은 지위가 됩니다.

        Raises:
            AccountNotFoundError, RoleNotFoundError: 대상이 없을 때.
            ValidationError: 비활성 계정일 때.
            RankExceeded: 역할 rank가 행위자의 최대 rank를 넘거나, 대상 계정이 행위자보다 낮지 않을 때.
        """
        self.authorization_service.validate_system_or_fail(actor_id, SystemResource.ACCOUNT.value, Action.UPDATE.value)
        account = self._get_account(account_id)
        if not account.is_active:
            raise ValidationError('account_id', 'Cannot assign a role to an inactive account.')
        role = self._get_role(role_id)
        actor_rank = self._check_account_action(actor_id, account_id, role)

        self.account_repo.assign_role(account, role, assigned_by=actor_id, valid_until=valid_until)
        self._invalidate()
        warning = rank_guard.is_same_rank_elevation(actor_rank, role.rank)
        if warning:
            logger.warning("Account %s granted role '%s' at the same rank as account %s", account_id, role.name, actor_id)
        return {"account_id": account.id, "role": role.name, "rank": role.rank, "same_rank_warning": warning}

    def revoke_role(self, actor_id: int, account_id: int, role_id: int) -> bool:
        """
        계정의 역할을 회수합니다. 행위자는 자신의 최고 rank 역할을 회수할 수 없습니다.

        Raises:
            AccountNotFoundError, RoleNotFoundError: 대상이 없을 때.
            RankExceeded: 역할 rank 또는 대상 계정의 rank가 행위자의 권한 밖일 때.
        """
        self.authorization_service.validate_system_or_fail(actor_id, SystemResource.ACCOUNT.value, Action.UPDATE.value)
        account = self._get_account(account_id)
        role = self._get_role(role_id)
        self._check_account_action(actor_id, account_id, role)

        revoked = self.account_repo.revoke_role(account, role)
        if revoked:
            self._invalidate()
        return revoked

    def list_members(self, actor_id: int) -> List[Dict[str, Any]]:
        """모든 계정과 각 계정의 최고 rank 역할을 조회합니다."""
        self.authorization_service.validate_system_or_fail(actor_id, SystemResource.ACCOUNT.value, Action.SELECT.value)
        return self.account_repo.list_members()

    # --- 역할-권한 연결 ---

    def grant_permission(self, actor_id: int, role_id: int, permission_id: int,
                         valid_until: Optional[datetime] = None) -> bool:
        """
        역할에 권한을 직접 부여합니다. 행위자는 역할보다 높은 rank여야 합니다.

        Raises:
            RoleNotFoundError, PermissionNotFoundError: 대상이 없을 때.
            RankExceeded: 행위자의 rank가 역할보다 높지 않을 때.
        """
        self.authorization_service.validate_system_or_fail(actor_id, SystemResource.ROLE.value, Action.UPDATE.value)
        role = self._get_role(role_id)
        permission = self.permission_repo.find_by_id(permission_id)
        if not permission:
            raise PermissionNotFoundError(f"Permission with id '{permission_id}' not found.")
        self._require_higher_rank_than_role(actor_id, role)

        self.role_repo.add_permission(role, permission, valid_until=valid_until)
        self._invalidate()
        return True

    def revoke_permission(self, actor_id: int, role_id: int, permission_id: int) -> bool:
        """
        Raises:
            RoleNotFoundError, PermissionNotFoundError: 대상이 없을 때.
            RankExceeded: 행위자의 rank가 역할보다 높지 않을 때.
        """
        self.authorization_service.validate_system_or_fail(actor_id, SystemResource.ROLE.value, Action.UPDATE.value)
        role = self._get_role(role_id)
        permission = self.permission_repo.find_by_id(permission_id)
        if not permission:
            raise PermissionNotFoundError(f"Permission with id '{permission_id}' not found.")
        self._require_higher_rank_than_role(actor_id, role)

        removed = self.role_repo.remove_permission(role, permission)
        if removed:
            self._invalidate()
        return removed

    def grant_permission_group(self, actor_id: int, role_id: int, group_id: int,
                               valid_until: Optional[datetime] = None) -> bool:
        """
        Raises:
            RoleNotFoundError, PermissionGroupNotFoundError: 대상이 없을 때.
            RankExceeded: 행위자의 rank가 역할보다 높지 않을 때.
        """
        self.authorization_service.validate_system_or_fail(actor_id, SystemResource.ROLE.value, Action.UPDATE.value)
        role = self._get_role(role_id)
        group = self.group_repo.find_by_id(group_id)
        if not group:
            raise PermissionGroupNotFoundError(f"Permission group with id '{group_id}' not found.")
        self._require_higher_rank_than_role(actor_id, role)

        self.role_repo.add_permission_group(role, group, valid_until=valid_until)
        self._invalidate()
        return True

    def revoke_permission_group(self, actor_id: int, role_id: int, group_id: int) -> bool:
        self.authorization_service.validate_system_or_fail(actor_id, SystemResource.ROLE.value, Action.UPDATE.value)
        role = self._get_role(role_id)
        group = self.group_repo.find_by_id(group_id)
        if not group:
            raise PermissionGroupNotFoundError(f"Permission group with id '{group_id}' not found.")
        self._require_higher_rank_than_role(actor_id, role)

        removed = self.role_repo.remove_permission_group(role, group)
        if removed:
            self._invalidate()
        return removed
