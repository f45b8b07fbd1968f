from datetime import datetime
from typing import Iterable, List, Optional
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session
from rbac_engine.database import models
from rbac_engine.repositories.interfaces import IPermissionRepository
from rbac_engine.repositories.sqlalchemy._filters import active

class SqlalchemyPermissionRepository(IPermissionRepository):
    def __init__(self, db_session: Session):
        self.db = db_session

    def find_effective_permissions(
        self,
        account_id: int,
        permission_type: Optional[str] = None,
        scope: Optional[str] = None,
        actions: Optional[Iterable[str]] = None,
    ) -> List[models.Permission]:
        now = datetime.now()

        # 역할에 직접 부여된 권한
        direct_ids = select(models.RolePermission.permission_id).join(
            models.AccountRole, models.AccountRole.role_id == models.RolePermission.role_id
        ).where(
            models.AccountRole.account_id == account_id,
            active(models.AccountRole, now),
            active(models.RolePermission, now),
        )

        # 역할에 연결된 권한 그룹을 통한 권한
        group_ids = select(models.PermissionGroupPermission.permission_id).join(
            models.RolePermissionGroup,
            models.RolePermissionGroup.group_id == models.PermissionGroupPermission.group_id,
        ).join(
            models.AccountRole, models.AccountRole.role_id == models.RolePermissionGroup.role_id
        ).where(
            models.AccountRole.account_id == account_id,
            active(models.AccountRole, now),
            active(models.RolePermissionGroup, now),
        )

        query = self.db.query(models.Permission).filter(
            or_(models.Permission.id.in_(direct_ids), models.Permission.id.in_(group_ids))
        )
        if permission_type:
            query = query.filter(models.Permission.permission_type == permission_type)
        if scope:
            query = query.filter(models.Permission.scope == scope)
        if actions is not None:
            wanted = set(actions) | {models.WILDCARD}
            query = query.filter(models.Permission.action.in_(sorted(wanted)))
        return query.order_by(models.Permission.id.asc()).all()

    def create(self, permission_model: models.Permission) -> models.Permission:
        self.db.add(permission_model)
        self.db.commit()
        self.db.refresh(permission_model)
        return permission_model

    def find_by_id(self, permission_id: int) -> Optional[models.Permission]:
        return self.db.query(models.Permission).filter(models.Permission.id == permission_id).first()

    def find_by_name(self, name: str) -> Optional[models.Permission]:
        return self.db.query(models.Permission).filter(models.Permission.name == name).first()

    def list_all(self) -> List[models.Permission]:
        return self.db.query(models.Permission).order_by(models.Permission.name.asc()).all()

    def update(self, permission: models.Permission) -> models.Permission:
        self.db.commit()
        self.db.refresh(permission)
        return permission

    def delete(self, permission: models.Permission) -> bool:
        if permission:
            self.db.delete(permission)
            self.db.commit()
            return True
        return False

    def get_max_rank_of_roles_using(self, permission_id: int) -> Optional[int]:
        return self.db.query(func.max(models.Role.rank)).join(
            models.RolePermission, models.RolePermission.role_id == models.Role.id
        ).filter(models.RolePermission.permission_id == permission_id).scalar()

    def is_in_use(self, permission_id: int) -> bool:
        in_roles = self.db.query(models.RolePermission).filter(
            models.RolePermission.permission_id == permission_id
        ).first() is not None
        if in_roles:
            return True
        return self.db.query(models.PermissionGroupPermission).filter(
            models.PermissionGroupPermission.permission_id == permission_id
        ).first() is not None
