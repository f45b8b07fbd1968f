from datetime import datetime
from typing import List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
from rbac_engine.database import models
from rbac_engine.repositories.interfaces import IPermissionGroupRepository
from rbac_engine.repositories.sqlalchemy._filters import active

class SqlalchemyPermissionGroupRepository(IPermissionGroupRepository):
    def __init__(self, db_session: Session):
        self.db = db_session

    def create(self, group_model: models.PermissionGroup) -> models.PermissionGroup:
        self.db.add(group_model)
        self.db.commit()
        self.db.refresh(group_model)
        return group_model

    def find_by_id(self, group_id: int) -> Optional[models.PermissionGroup]:
        return self.db.query(models.PermissionGroup).filter(models.PermissionGroup.id == group_id).first()

    def find_by_name(self, name: str) -> Optional[models.PermissionGroup]:
        return self.db.query(models.PermissionGroup).filter(models.PermissionGroup.name == name).first()

    def delete(self, group: models.PermissionGroup) -> bool:
        if group:
            self.db.delete(group)
            self.db.commit()
            return True
        return False

    def list_permissions(self, group_id: int) -> List[models.Permission]:
        return self.db.query(models.Permission).join(
            models.PermissionGroupPermission,
            models.PermissionGroupPermission.permission_id == models.Permission.id
        ).filter(
            models.PermissionGroupPermission.group_id == group_id
        ).order_by(models.Permission.name.asc()).all()

    def add_permission(self, group: models.PermissionGroup, permission: models.Permission):
        link = models.PermissionGroupPermission(group_id=group.id, permission_id=permission.id)
        self.db.merge(link) # INSERT OR IGNORE와 유사한 동작
        self.db.commit()

    def remove_permission(self, group: models.PermissionGroup, permission: models.Permission) -> bool:
        deleted = self.db.query(models.PermissionGroupPermission).filter(
            models.PermissionGroupPermission.group_id == group.id,
            models.PermissionGroupPermission.permission_id == permission.id
        ).delete(synchronize_session=False)
        self.db.commit()
        return deleted > 0

    def get_max_rank_of_roles_using(self, group_id: int) -> Optional[int]:
        return self.db.query(func.max(models.Role.rank)).join(
            models.RolePermissionGroup, models.RolePermissionGroup.role_id == models.Role.id
        ).filter(models.RolePermissionGroup.group_id == group_id).scalar()

    def account_has_group(self, account_id: int, group_id: int) -> bool:
        return self.db.query(models.RolePermissionGroup).join(
            models.AccountRole, models.AccountRole.role_id == models.RolePermissionGroup.role_id
        ).filter(
            models.AccountRole.account_id == account_id,
            models.RolePermissionGroup.group_id == group_id,
            active(models.AccountRole, datetime.now())
        ).first() is not None
