import logging
from typing import Any, Dict, Iterable, List, Optional

from rbac_engine.database import models
from rbac_engine.database.models import Action, SystemResource
from rbac_engine.repositories.interfaces import (
    IAccountRepository, IPermissionGroupRepository, IPermissionRepository
)
from rbac_engine.services import rank_guard
from rbac_engine.services.authorization_service import AuthorizationService
from rbac_engine.services.exceptions import (
    PermissionDenied, PermissionGroupNotFoundError, PermissionInUseError,
    PermissionNotFoundError, RankExceeded, ValidationError
)
from rbac_engine.services.permission_cache import PermissionSetCache
from rbac_engine.utils.permission_validator import validate_permission_definition

logger = logging.getLogger(__name__)

PERMISSION = SystemResource.PERMISSION.value


def permission_to_dict(permission: models.Permission) -> Dict[str, Any]:
    return {
        "id": permission.id,
        "name": permission.name,
        "description": permission.description,
        "permission_type": permission.permission_type,
        "action": permission.action,
        "system_resource": permission.system_resource,
        "scope": permission.scope,
        "schema_name": permission.schema_name,
        "table_name": permission.table_name,
        "column_name": permission.column_name,
        "metadata": dict(permission.resource_metadata or {}),
    }


class PermissionService:
    """권한 정의와 권한 그룹을 관리하는 서비스입니다."""

    def __init__(
        self,
        permission_repo: IPermissionRepository,
        group_repo: IPermissionGroupRepository,
        account_repo: IAccountRepository,
        authorization_service: AuthorizationService,
        cache: Optional[PermissionSetCache] = None,
        protected_schemas: Optional[Iterable[str]] = None,
    ):
        self.permission_repo = permission_repo
        self.group_repo = group_repo
        self.account_repo = account_repo
        self.authorization_service = authorization_service
        self.cache = cache if cache is not None else authorization_service.cache
        self.protected_schemas = protected_schemas

    def _invalidate(self):
        if self.cache is not None:
            self.cache.invalidate_all()

    def _get_permission(self, permission_id: int) -> models.Permission:
        permission = self.permission_repo.find_by_id(permission_id)
        if not permission:
            raise PermissionNotFoundError(f"Permission with id '{permission_id}' not found.")
        return permission

    def _get_group(self, group_id: int) -> models.PermissionGroup:
        group = self.group_repo.find_by_id(group_id)
        if not group:
            raise PermissionGroupNotFoundError(f"Permission group with id '{group_id}' not found.")
        return group

    def _check_permission_modifiable(self, actor_id: int, permission: models.Permission) -> None:
        # 권한을 사용하는 모든 역할보다 높은 rank여야 수정할 수 있습니다.
        max_rank = self.permission_repo.get_max_rank_of_roles_using(permission.id)
        if max_rank is None:
            return
        actor_rank = self.account_repo.get_max_role_rank(actor_id)
        if not rank_guard.outranks(actor_rank, max_rank):
            raise RankExceeded(actor_rank, max_rank)

    def _check_group_modifiable(self, actor_id: int, group: models.PermissionGroup, deleting: bool = False) -> None:
        max_rank = self.group_repo.get_max_rank_of_roles_using(group.id)
        if max_rank is None:
            # 어떤 역할에도 연결되지 않은 그룹은 생성자만 수정할 수 있습니다.
            if group.created_by != actor_id:
                raise PermissionDenied('system', f"permission_group/{group.name}",
                                       Action.DELETE.value if deleting else Action.UPDATE.value,
                                       detail='only the creator may modify an unused group')
            return

        actor_rank = self.account_repo.get_max_role_rank(actor_id)
        allowed = rank_guard.outranks(actor_rank, max_rank) if deleting else (
            actor_rank is not None and actor_rank >= max_rank
        )
        if not allowed:
            raise RankExceeded(actor_rank, max_rank)

    # --- 권한 ---

    def create_permission(self, actor_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        새로운 권한을 정의합니다.

        Args:
            actor_id: 요청한 계정 ID.
            data: validate_permission_definition()이 받는 필드 딕셔너리.

        Raises:
            PermissionDenied: 행위자에게 permission insert 권한이 없을 때.
            ValidationError: 정의가 잘못되었거나 이름이 중복일 때.
        """
        self.authorization_service.validate_system_or_fail(actor_id, PERMISSION, Action.INSERT.value)
        cleaned = validate_permission_definition(data, self.protected_schemas)
        if self.permission_repo.find_by_name(cleaned['name']):
            raise ValidationError('name', f"Permission with name '{cleaned['name']}' already exists.")

        created = self.permission_repo.create(models.Permission(**cleaned))
        self._invalidate()
        logger.info("Permission '%s' created by account %s", created.name, actor_id)
        return permission_to_dict(created)

    def update_permission(self, actor_id: int, permission_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        권한 정의를 변경합니다. 주어지지 않은 필드는 기존 값을 유지하며, 결과 전체를 다시 검증합니다.

        Raises:
            PermissionNotFoundError: 해당 ID의 권한을 찾을 수 없을 때.
            RankExceeded: 권한을 사용하는 역할보다 행위자의 rank가 높지 않을 때.
            ValidationError: 변경 결과가 올바른 정의가 아닐 때.
        """
        self.authorization_service.validate_system_or_fail(actor_id, PERMISSION, Action.UPDATE.value)
        permission = self._get_permission(permission_id)
        self._check_permission_modifiable(actor_id, permission)

        merged = permission_to_dict(permission)
        merged.pop("id")
        merged.update(data)
        cleaned = validate_permission_definition(merged, self.protected_schemas)
        if cleaned['name'] != permission.name and self.permission_repo.find_by_name(cleaned['name']):
            raise ValidationError('name', f"Permission with name '{cleaned['name']}' already exists.")

        for field, value in cleaned.items():
            setattr(permission, field, value)
        updated = self.permission_repo.update(permission)
        self._invalidate()
        return permission_to_dict(updated)

    def delete_permission(self, actor_id: int, permission_id: int) -> bool:
        """
        Raises:
            PermissionNotFoundError: 해당 ID의 권한을 찾을 수 없을 때.
            RankExceeded: 권한을 사용하는 역할보다 행위자의 rank가 높지 않을 때.
            PermissionInUseError: 역할이나 권한 그룹에서 참조 중일 때.
        """
        self.authorization_service.validate_system_or_fail(actor_id, PERMISSION, Action.DELETE.value)
        permission = self._get_permission(permission_id)
        self._check_permission_modifiable(actor_id, permission)
        if self.permission_repo.is_in_use(permission.id):
            raise PermissionInUseError(f"Permission '{permission.name}' is still referenced by roles or groups.")

        self.permission_repo.delete(permission)
        self._invalidate()
        logger.info("Permission '%s' deleted by account %s", permission.name, actor_id)
        return True

    def list_permissions(self, actor_id: int) -> List[Dict[str, Any]]:
        """모든 권한 정의를 이름 순으로 조회합니다."""
        self.authorization_service.validate_system_or_fail(actor_id, PERMISSION, Action.SELECT.value)
        return [permission_to_dict(p) for p in self.permission_repo.list_all()]

    # --- 권한 그룹 ---

    def create_permission_group(self, actor_id: int, name: str, description: Optional[str] = None) -> Dict[str, Any]:
        """
        Raises:
            ValidationError: 이름이 비었거나 중복일 때.
        """
        self.authorization_service.validate_system_or_fail(actor_id, PERMISSION, Action.INSERT.value)
        if not name:
            raise ValidationError('name', 'This field is required.')
        if self.group_repo.find_by_name(name):
            raise ValidationError('name', f"Permission group with name '{name}' already exists.")

        group = self.group_repo.create(
            models.PermissionGroup(name=name, description=description, created_by=actor_id)
        )
        self._invalidate()
        return {"id": group.id, "name": group.name, "description": group.description, "created_by": group.created_by}

    def add_permission_to_group(self, actor_id: int, group_id: int, permission_id: int) -> bool:
        """
        그룹에 권한을 추가합니다. 그룹을 사용하는 역할 중 최고 rank 이상이어야 합니다.

        Raises:
            PermissionGroupNotFoundError, PermissionNotFoundError: 대상이 없을 때.
            RankExceeded: 행위자의 rank가 부족할 때.
            PermissionDenied: 사용되지 않는 그룹을 생성자가 아닌 계정이 수정하려 할 때.
        """
        self.authorization_service.validate_system_or_fail(actor_id, PERMISSION, Action.UPDATE.value)
        group = self._get_group(group_id)
        permission = self._get_permission(permission_id)
        self._check_group_modifiable(actor_id, group)

        self.group_repo.add_permission(group, permission)
        self._invalidate()
        return True

    def remove_permission_from_group(self, actor_id: int, group_id: int, permission_id: int) -> bool:
        self.authorization_service.validate_system_or_fail(actor_id, PERMISSION, Action.UPDATE.value)
        group = self._get_group(group_id)
        permission = self._get_permission(permission_id)
        self._check_group_modifiable(actor_id, group)

        removed = self.group_repo.remove_permission(group, permission)
        if removed:
            self._invalidate()
        return removed

    def delete_permission_group(self, actor_id: int, group_id: int) -> bool:
        """
        그룹을 삭제합니다. 그룹을 사용하는 역할보다 높은 rank여야 하며, 자신이 보유한 그룹은 삭제할 수 없습니다.

        Raises:
            PermissionGroupNotFoundError: 해당 ID의 그룹을 찾을 수 없을 때.
            RankExceeded: 행위자의 rank가 부족할 때.
            ValidationError: 행위자가 역할을 통해 보유한 그룹일 때.
        """
        self.authorization_service.validate_system_or_fail(actor_id, PERMISSION, Action.DELETE.value)
        group = self._get_group(group_id)
        self._check_group_modifiable(actor_id, group, deleting=True)
        if self.group_repo.account_has_group(actor_id, group.id):
            raise ValidationError('group_id', 'Cannot delete a permission group you hold.')

        self.group_repo.delete(group)
        self._invalidate()
        logger.info("Permission group '%s' deleted by account %s", group.name, actor_id)
        return True
