from enum import Enum

from sqlalchemy import JSON, Column, DateTime, Integer, String, func
from sqlalchemy.orm import relationship
from ..database import Base


class PermissionType(str, Enum):
    SYSTEM = "system"
    DATA = "data"


class PermissionScope(str, Enum):
    TABLE = "table"
    STORAGE = "storage"


class SystemResource(str, Enum):
    ACCOUNT = "account"
    ROLE = "role"
    PERMISSION = "permission"
    LOG = "log"
    TABLE = "table"
    AUTH_USER = "auth_user"
    SYSTEM_SETTING = "system_setting"


class Action(str, Enum):
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    ALL = "*"


WILDCARD = "*"


class Permission(Base):
    """
    하나의 허용 규칙을 나타냅니다. 모델은 허용(allow) 전용이며, 거부 규칙은 존재하지 않습니다.

    - permission_type = 'system': system_resource(예: account, role)에 대한 관리 권한.
    - permission_type = 'data', scope = 'table': schema_name/table_name(+선택적 column_name) 범위.
    - permission_type = 'data', scope = 'storage': metadata의 bucket_name/path_pattern 범위.

    schema_name, table_name, bucket_name, action은 와일드카드 '*'를 가질 수 있습니다.
    """
    __tablename__ = "permissions"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(String(500), nullable=True)
    permission_type = Column(String, nullable=False, index=True)
    system_resource = Column(String, nullable=True)
    scope = Column(String, nullable=True)
    schema_name = Column(String(64), nullable=True)
    table_name = Column(String(64), nullable=True)
    column_name = Column(String(64), nullable=True)
    action = Column(String, nullable=False)
    # 'metadata'는 declarative Base의 예약어이므로 속성 이름을 따로 둡니다.
    resource_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    role_links = relationship("RolePermission", back_populates="permission", cascade="all, delete-orphan")
    group_links = relationship("PermissionGroupPermission", back_populates="permission", cascade="all, delete-orphan")

    @property
    def bucket_name(self):
        return (self.resource_metadata or {}).get("bucket_name")

    @property
    def path_pattern(self):
        return (self.resource_metadata or {}).get("path_pattern")
