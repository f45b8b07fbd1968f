from datetime import datetime
from sqlalchemy import or_


def active(model, now: datetime):
    """valid_until이 없거나 아직 지나지 않은 행만 남기는 조건."""
    return or_(model.valid_until.is_(None), model.valid_until > now)
