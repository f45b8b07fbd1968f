from abc import ABC, abstractmethod
from typing import List, Optional
from rbac_engine.database import models

class IPermissionGroupRepository(ABC):
    @abstractmethod
    def create(self, group_model: models.PermissionGroup) -> models.PermissionGroup:
        """새로운 권한 그룹을 데이터베이스에 생성합니다."""
        pass

    @abstractmethod
    def find_by_id(self, group_id: int) -> Optional[models.PermissionGroup]:
        """고유 ID로 특정 권한 그룹을 조회합니다."""
        pass

    @abstractmethod
    def find_by_name(self, name: str) -> Optional[models.PermissionGroup]:
        """이름으로 특정 권한 그룹을 조회합니다."""
        pass

    @abstractmethod
    def delete(self, group: models.PermissionGroup) -> bool:
        """특정 권한 그룹을 데이터베이스에서 삭제합니다."""
        pass

    @abstractmethod
    def list_permissions(self, group_id: int) -> List[models.Permission]:
        """그룹에 포함된 권한 목록을 조회합니다."""
        pass

    @abstractmethod
    def add_permission(self, group: models.PermissionGroup, permission: models.Permission):
        """그룹에 권한을 추가합니다. 이미 포함되어 있으면 무시합니다."""
        pass

    @abstractmethod
    def remove_permission(self, group: models.PermissionGroup, permission: models.Permission) -> bool:
        """그룹에서 권한을 제거합니다."""
        pass

    @abstractmethod
    def get_max_rank_of_roles_using(self, group_id: int) -> Optional[int]:
        """그룹이 연결된 역할들 중 최대 rank. 연결된 역할이 없으면 None."""
        pass

    @abstractmethod
    def account_has_group(self, account_id: int, group_id: int) -> bool:
        """계정의 역할을 통해 해당 그룹을 보유하고 있는지 확인합니다."""
        pass
