from abc import ABC, abstractmethod
from typing import Iterable, List, Optional
from rbac_engine.database import models

class IPermissionRepository(ABC):
    @abstractmethod
    def find_effective_permissions(
        self,
        account_id: int,
        permission_type: Optional[str] = None,
        scope: Optional[str] = None,
        actions: Optional[Iterable[str]] = None,
    ) -> List[models.Permission]:
        """
        계정의 유효 권한 집합을 한 번의 쿼리로 조회합니다.

        유효 권한 집합 = 계정 역할의 직접 권한 ∪ 역할에 연결된 권한 그룹의 권한.
        만료된 할당/연결은 제외합니다. 하나의 SQL 문으로 실행되므로 관리자의 동시 변경이
        조회 도중 부분적으로 반영되지 않습니다.

        Args:
            account_id: 평가 대상 계정 ID.
            permission_type: 'system' 또는 'data'로 후보를 좁힙니다.
            scope: 'table' 또는 'storage'로 후보를 좁힙니다.
            actions: 요청 액션 목록. 주어지면 해당 액션 또는 '*' 권한만 조회합니다.
        """
        pass

    @abstractmethod
    def create(self, permission_model: models.Permission) -> models.Permission:
        """새로운 권한을 데이터베이스에 생성합니다."""
        pass

    @abstractmethod
    def find_by_id(self, permission_id: int) -> Optional[models.Permission]:
        """고유 ID로 특정 권한을 조회합니다."""
        pass

    @abstractmethod
    def find_by_name(self, name: str) -> Optional[models.Permission]:
        """이름으로 특정 권한을 조회합니다."""
        pass

    @abstractmethod
    def list_all(self) -> List[models.Permission]:
        """모든 권한의 목록을 조회합니다."""
        pass

    @abstractmethod
    def update(self, permission: models.Permission) -> models.Permission:
        """변경된 권한 정보를 저장합니다."""
        pass

    @abstractmethod
    def delete(self, permission: models.Permission) -> bool:
        """특정 권한을 데이터베이스에서 삭제합니다."""
        pass

    @abstractmethod
    def get_max_rank_of_roles_using(self, permission_id: int) -> Optional[int]:
        """권한을 직접 부여받은 역할들 중 최대 rank. 사용 중인 역할이 없으면 None."""
        pass

    @abstractmethod
    def is_in_use(self, permission_id: int) -> bool:
        """권한이 역할이나 권한 그룹에서 참조되고 있는지 확인합니다."""
        pass
