from sqlalchemy import Column, DateTime, ForeignKey, Integer, UniqueConstraint, func
from sqlalchemy.orm import relationship
from ..database import Base

class AccountRole(Base):
    """
    계정(Account)과 역할(Role)을 연결하는 연관 테이블 모델입니다.
    현재 모델에서는 계정당 하나의 역할만 허용하지만(account_id unique),
    유효 rank 계산은 여러 역할이 있을 경우를 대비해 최대값을 사용합니다.
    valid_until이 지난 할당은 무시됩니다.
    """
    __tablename__ = 'account_roles'
    __table_args__ = (UniqueConstraint('account_id', name='account_roles_one_role_per_account'),)

    account_id = Column(Integer, ForeignKey('accounts.id', ondelete='CASCADE'), primary_key=True)
    role_id = Column(Integer, ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True)
    assigned_at = Column(DateTime, server_default=func.now())
    assigned_by = Column(Integer, ForeignKey('accounts.id'), nullable=True)
    valid_until = Column(DateTime, nullable=True)

    account = relationship("Account", back_populates="role_assignments", foreign_keys=[account_id])
    role = relationship("Role", back_populates="account_assignments")


class RolePermission(Base):
    """역할에 직접 부여된 권한 (Role ↔ Permission 다대다)."""
    __tablename__ = 'role_permissions'
    role_id = Column(Integer, ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True)
    permission_id = Column(Integer, ForeignKey('permissions.id', ondelete='CASCADE'), primary_key=True)
    granted_at = Column(DateTime, server_default=func.now())
    valid_until = Column(DateTime, nullable=True)

    role = relationship("Role", back_populates="permission_links")
    permission = relationship("Permission", back_populates="role_links")


class RolePermissionGroup(Base):
    """역할에 연결된 권한 그룹 (Role ↔ PermissionGroup 다대다)."""
    __tablename__ = 'role_permission_groups'
    role_id = Column(Integer, ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True)
    group_id = Column(Integer, ForeignKey('permission_groups.id', ondelete='CASCADE'), primary_key=True)
    assigned_at = Column(DateTime, server_default=func.now())
    valid_until = Column(DateTime, nullable=True)

    role = relationship("Role", back_populates="group_links")
    group = relationship("PermissionGroup", back_populates="role_links")


class PermissionGroupPermission(Base):
    """권한 그룹에 포함된 권한 (PermissionGroup ↔ Permission 다대다)."""
    __tablename__ = 'permission_group_permissions'
    group_id = Column(Integer, ForeignKey('permission_groups.id', ondelete='CASCADE'), primary_key=True)
    permission_id = Column(Integer, ForeignKey('permissions.id', ondelete='CASCADE'), primary_key=True)
    added_at = Column(DateTime, server_default=func.now())

    group = relationship("PermissionGroup", back_populates="permission_links")
    permission = relationship("Permission", back_populates="group_links")
