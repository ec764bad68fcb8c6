# urgentcare/seed_catalog.py
"""Create tables and load the service-type and symptom catalog.

    python -m urgentcare.seed_catalog

Idempotent: entries are matched by name and only missing ones are inserted.
"""
import sys
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv

# Allow running from the urgentcare/ directory without PYTHONPATH tweaks
ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.append(str(ROOT_DIR))

ENV_PATH = ROOT_DIR / "urgentcare" / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH, override=False)

from sqlalchemy import select  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from urgentcare.db.session import SessionLocal  # noqa: E402
from urgentcare.models import init_db  # noqa: E402
from urgentcare.models.catalog import ServiceType, Symptom  # noqa: E402

SERVICE_TYPES = [
    {"name": "Telehealth consult", "description": "Video visit with a licensed provider", "base_price": Decimal("49.00"), "duration_minutes": 20},
    {"name": "Urgent care house call", "description": "Provider visit at your location", "base_price": Decimal("100.00"), "duration_minutes": 60},
    {"name": "Pediatric house call", "description": "Home visit for children under 18", "base_price": Decimal("120.00"), "duration_minutes": 60},
    {"name": "IV hydration", "description": "In-home IV fluids", "base_price": Decimal("175.00"), "duration_minutes": 90},
]

SYMPTOMS = [
    {"name": "Fever", "category": "general", "severity_weight": 2},
    {"name": "Cough", "category": "respiratory", "severity_weight": 1},
    {"name": "Sore throat", "category": "respiratory", "severity_weight": 1},
    {"name": "Headache", "category": "neurological", "severity_weight": 1},
    {"name": "Nausea", "category": "digestive", "severity_weight": 1},
    {"name": "Vomiting", "category": "digestive", "severity_weight": 2},
    {"name": "Rash", "category": "skin", "severity_weight": 1},
    {"name": "Ear pain", "category": "ent", "severity_weight": 1},
    {"name": "Chest pain", "category": "cardiac", "severity_weight": 5, "requires_immediate_care": True},
    {"name": "Difficulty breathing", "category": "respiratory", "severity_weight": 5, "requires_immediate_care": True},
    {"name": "Confusion", "category": "neurological", "severity_weight": 4, "requires_immediate_care": True},
]


def _insert_missing(db: Session, model, rows) -> int:
    existing = set(db.execute(select(model.name)).scalars())
    added = 0
    for row in rows:
        if row["name"] in existing:
            continue
        db.add(model(**row))
        added += 1
    return added


def seed_catalog(db: Session) -> dict:
    counts = {
        "service_types": _insert_missing(db, ServiceType, SERVICE_TYPES),
        "symptoms": _insert_missing(db, Symptom, SYMPTOMS),
    }
    db.commit()
    return counts


def main():
    init_db()
    with SessionLocal() as db:
        counts = seed_catalog(db)
    print(f"Seeded {counts['service_types']} service types and {counts['symptoms']} symptoms")


if __name__ == "__main__":
    main()
