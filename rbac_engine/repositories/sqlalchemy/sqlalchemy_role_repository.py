from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from rbac_engine.database import models
from rbac_engine.repositories.interfaces import IRoleRepository

class SqlalchemyRoleRepository(IRoleRepository):
    def __init__(self, db_session: Session):
        self.db = db_session

    def create(self, role_model: models.Role) -> models.Role:
        self.db.add(role_model)
        self.db.commit()
        self.db.refresh(role_model)
        return role_model

    def find_by_id(self, role_id: int) -> Optional[models.Role]:
        return self.db.query(models.Role).filter(models.Role.id == role_id).first()

    def find_by_name(self, name: str) -> Optional[models.Role]:
        return self.db.query(models.Role).filter(models.Role.name == name).first()

    def list_all(self) -> List[models.Role]:
        return self.db.query(models.Role).order_by(models.Role.rank.desc(), models.Role.name.asc()).all()

    def update(self, role: models.Role) -> models.Role:
        self.db.commit()
        self.db.refresh(role)
        return role

    def delete(self, role: models.Role) -> bool:
        if role:
            self.db.delete(role)
            self.db.commit()
            return True
        return False

    def count_assignments(self, role_id: int) -> int:
        return self.db.query(models.AccountRole).filter(models.AccountRole.role_id == role_id).count()

    def add_permission(self, role: models.Role, permission: models.Permission,
                       valid_until: Optional[datetime] = None):
        link = models.RolePermission(role_id=role.id, permission_id=permission.id, valid_until=valid_until)
        self.db.merge(link)
        self.db.commit()

    def remove_permission(self, role: models.Role, permission: models.Permission) -> bool:
        deleted = self.db.query(models.RolePermission).filter(
            models.RolePermission.role_id == role.id,
            models.RolePermission.permission_id == permission.id
        ).delete(synchronize_session=False)
        self.db.commit()
        return deleted > 0

    def add_permission_group(self, role: models.Role, group: models.PermissionGroup,
                             valid_until: Optional[datetime] = None):
        link = models.RolePermissionGroup(role_id=role.id, group_id=group.id, valid_until=valid_until)
        self.db.merge(link)
        self.db.commit()

    def remove_permission_group(self, role: models.Role, group: models.PermissionGroup) -> bool:
        deleted = self.db.query(models.RolePermissionGroup).filter(
            models.RolePermissionGroup.role_id == role.id,
            models.RolePermissionGroup.group_id == group.id
        ).delete(synchronize_session=False)
        self.db.commit()
        return deleted > 0
