from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional
from rbac_engine.database import models

class IAccountRepository(ABC):
    @abstractmethod
    def create(self, account_model: models.Account) -> models.Account:
        """새로운 계정을 데이터베이스에 생성합니다."""
        pass

    @abstractmethod
    def find_by_id(self, account_id: int) -> Optional[models.Account]:
        """고유 ID로 특정 계정을 조회합니다."""
        pass

    @abstractmethod
    def find_by_email(self, email: str) -> Optional[models.Account]:
        """이메일로 특정 계정을 조회합니다."""
        pass

    @abstractmethod
    def get_max_role_rank(self, account_id: int) -> Optional[int]:
        """
        계정에 할당된 유효한 역할들 중 최대 rank를 조회합니다.

        Returns:
            최대 rank. 유효한 역할이 없으면 None.
        """
        pass

    @abstractmethod
    def has_role(self, account_id: int, role_id: int) -> bool:
        """계정이 특정 역할을 (유효하게) 보유하고 있는지 확인합니다."""
        pass

    @abstractmethod
    def assign_role(self, account: models.Account, role: models.Role,
                    assigned_by: Optional[int] = None, valid_until: Optional[datetime] = None):
        """
        계정에 역할을 부여합니다. 계정당 하나의 역할만 허용되므로 기존 할당은 교체됩니다.
        """
        pass

    @abstractmethod
    def revoke_role(self, account: models.Account, role: models.Role) -> bool:
        """계정의 역할 할당을 회수합니다. 할당이 없었으면 False를 반환합니다."""
        pass

    @abstractmethod
    def list_members(self) -> List[Dict[str, Any]]:
        """
        모든 계정과 각 계정의 최고 역할 rank를 조회합니다.

        Returns:
            (예: [{'id': 1, 'email': 'root@example.com', 'role': 'Root', 'rank': 100}])
            역할이 없는 계정은 role/rank가 None입니다.
        """
        pass
