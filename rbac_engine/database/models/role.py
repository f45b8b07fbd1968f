from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String, func
from sqlalchemy.orm import relationship
from ..database import Base

class Role(Base):
    """
    계정에 부여되는 권한의 묶음을 정의합니다. (예: 'Root', 'Admin', 'Viewer')
    rank는 권한 수준의 대리값으로, 값이 클수록 더 많은 권한을 가집니다.
    역할 부여와 rank 변경은 RankGuard를 거쳐야 합니다.
    """
    __tablename__ = "roles"
    __table_args__ = (CheckConstraint("rank >= 0", name="roles_rank_non_negative"),)

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    description = Column(String, nullable=True)
    rank = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, server_default=func.now())

    account_assignments = relationship("AccountRole", back_populates="role", cascade="all, delete-orphan")
    permission_links = relationship("RolePermission", back_populates="role", cascade="all, delete-orphan")
    group_links = relationship("RolePermissionGroup", back_populates="role", cascade="all, delete-orphan")
