from sqlalchemy import Boolean, Column, DateTime, Integer, String, func
from sqlalchemy.orm import relationship
from ..database import Base

class Account(Base):
    """
    관리 콘솔에 접근하는 주체(principal)를 나타냅니다.
    인증 사용자(auth user)와 1:1로 연결되며, 최대 하나의 활성 역할(Role)을 가집니다.
    비활성 계정에는 역할을 부여할 수 없습니다.
    """
    __tablename__ = "accounts"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    auth_user_id = Column(String, unique=True, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now())

    role_assignments = relationship(
        "AccountRole",
        back_populates="account",
        cascade="all, delete-orphan",
        foreign_keys="AccountRole.account_id",
    )
