from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional
from rbac_engine.database import models

class IRoleRepository(ABC):
    @abstractmethod
    def create(self, role_model: models.Role) -> models.Role:
        """새로운 역할을 데이터베이스에 생성합니다."""
        pass

    @abstractmethod
    def find_by_id(self, role_id: int) -> Optional[models.Role]:
        """고유 ID로 특정 역할을 조회합니다."""
        pass

    @abstractmethod
    def find_by_name(self, name: str) -> Optional[models.Role]:
        """이름으로 특정 역할을 조회합니다."""
        pass

    @abstractmethod
    def list_all(self) -> List[models.Role]:
        """모든 역할을 rank 내림차순으로 조회합니다."""
        pass

    @abstractmethod
    def update(self, role: models.Role) -> models.Role:
        """변경된 역할 정보를 저장합니다."""
        pass

    @abstractmethod
    def delete(self, role: models.Role) -> bool:
        """특정 역할을 데이터베이스에서 삭제합니다."""
        pass

    @abstractmethod
    def count_assignments(self, role_id: int) -> int:
        """역할이 할당된 계정 수를 조회합니다."""
        pass

    @abstractmethod
    def add_permission(self, role: models.Role, permission: models.Permission,
                       valid_until: Optional[datetime] = None):
        """역할에 권한을 직접 부여합니다. 이미 부여되어 있으면 갱신합니다."""
        pass

    @abstractmethod
    def remove_permission(self, role: models.Role, permission: models.Permission) -> bool:
        """역할에서 직접 부여된 권한을 회수합니다."""
        pass

    @abstractmethod
    def add_permission_group(self, role: models.Role, group: models.PermissionGroup,
                             valid_until: Optional[datetime] = None):
        """역할에 권한 그룹을 연결합니다."""
        pass

    @abstractmethod
    def remove_permission_group(self, role: models.Role, group: models.PermissionGroup) -> bool:
        """역할에서 권한 그룹 연결을 해제합니다."""
        pass
