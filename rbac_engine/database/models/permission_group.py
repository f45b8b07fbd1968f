from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import relationship
from ..database import Base

class PermissionGroup(Base):
    """
    여러 역할에서 재사용할 수 있도록 Permission을 묶어 둔 그룹입니다.
    역할의 유효 권한 집합에는 해당 역할에 연결된 그룹의 모든 권한이 포함됩니다.
    """
    __tablename__ = "permission_groups"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(String(500), nullable=True)
    created_by = Column(Integer, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    permission_links = relationship("PermissionGroupPermission", back_populates="group", cascade="all, delete-orphan")
    role_links = relationship("RolePermissionGroup", back_populates="group", cascade="all, delete-orphan")
