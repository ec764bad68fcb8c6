# urgentcare/services/catalog.py
from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from urgentcare.models.catalog import ServiceType, Symptom

SYMPTOM_SEARCH_LIMIT = 10


def list_service_types(db: Session) -> List[ServiceType]:
    """Active service types, cheapest first."""
    stmt = select(ServiceType).where(ServiceType.is_active.is_(True)).order_by(ServiceType.base_price, ServiceType.name)
    return list(db.execute(stmt).scalars())


def list_symptoms(db: Session) -> List[Symptom]:
    return list(db.execute(select(Symptom).order_by(Symptom.name)).scalars())


def search_symptoms(db: Session, query: str, limit: int = SYMPTOM_SEARCH_LIMIT) -> List[Symptom]:
    q = (query or "").strip()
    if not q:
        return []
    # escape LIKE wildcards typed by the user
    pattern = "%" + q.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%"
    stmt = (
        select(Symptom)
        .where(Symptom.name.ilike(pattern, escape="\\"))
        .order_by(Symptom.name)
        .limit(limit)
    )
    return list(db.execute(stmt).scalars())
