from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import and_, func
from sqlalchemy.orm import Session
from rbac_engine.database import models
from rbac_engine.repositories.interfaces import IAccountRepository
from rbac_engine.repositories.sqlalchemy._filters import active

class SqlalchemyAccountRepository(IAccountRepository):
    def __init__(self, db_session: Session):
        self.db = db_session

    def create(self, account_model: models.Account) -> models.Account:
        self.db.add(account_model)
        self.db.commit()
        self.db.refresh(account_model)
        return account_model

    def find_by_id(self, account_id: int) -> Optional[models.Account]:
        return self.db.query(models.Account).filter(models.Account.id == account_id).first()

    def find_by_email(self, email: str) -> Optional[models.Account]:
        return self.db.query(models.Account).filter(models.Account.email == email).first()

    def get_max_role_rank(self, account_id: int) -> Optional[int]:
        return self.db.query(func.max(models.Role.rank)).join(
            models.AccountRole, models.AccountRole.role_id == models.Role.id
        ).filter(
            models.AccountRole.account_id == account_id,
            active(models.AccountRole, datetime.now())
        ).scalar()

    def has_role(self, account_id: int, role_id: int) -> bool:
        return self.db.query(models.AccountRole).filter(
            models.AccountRole.account_id == account_id,
            models.AccountRole.role_id == role_id,
            active(models.AccountRole, datetime.now())
        ).first() is not None

    def assign_role(self, account: models.Account, role: models.Role,
                    assigned_by: Optional[int] = None, valid_until: Optional[datetime] = None):
        # 계정당 하나의 역할만 허용하므로 다른 역할 할당은 먼저 제거합니다.
        self.db.query(models.AccountRole).filter(
            models.AccountRole.account_id == account.id,
            models.AccountRole.role_id != role.id
        ).delete(synchronize_session=False)
        association = models.AccountRole(
            account_id=account.id, role_id=role.id, assigned_by=assigned_by, valid_until=valid_until
        )
        self.db.merge(association)
        self.db.commit()

    def revoke_role(self, account: models.Account, role: models.Role) -> bool:
        association = self.db.query(models.AccountRole).filter(
            models.AccountRole.account_id == account.id,
            models.AccountRole.role_id == role.id
        ).first()
        if association:
            self.db.delete(association)
            self.db.commit()
            return True
        return False

    def list_members(self) -> List[Dict[str, Any]]:
        rows = self.db.query(models.Account, models.Role).outerjoin(
            models.AccountRole,
            and_(models.AccountRole.account_id == models.Account.id, active(models.AccountRole, datetime.now()))
        ).outerjoin(
            models.Role, models.Role.id == models.AccountRole.role_id
        ).order_by(models.Account.email.asc()).all()

        members = {}
        for account, role in rows:
            member = members.setdefault(account.id, {
                "id": account.id,
                "email": account.email,
                "is_active": account.is_active,
                "role": None,
                "rank": None,
            })
            if role is not None and (member["rank"] is None or role.rank > member["rank"]):
                member["role"] = role.name
                member["rank"] = role.rank
        return list(members.values())
