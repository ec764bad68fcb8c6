from __future__ import annotations

import os
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterable, Iterator, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import Session, joinedload, selectinload

from urgentcare.models.care_request import CareRequest, CareRequestStatus, CasePatient, CasePatientSymptom
from urgentcare.services.status import ACTIVE_VISIT_STATUSES, UNCLAIMED_STATUSES


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (ValueError, TypeError):
        return default


UNCLAIMED_PAGE_SIZE = _env_int("UNCLAIMED_PAGE_SIZE", 20)
HISTORY_PAGE_SIZE = _env_int("HISTORY_PAGE_SIZE", 50)
ADMIN_PAGE_SIZE = _env_int("ADMIN_PAGE_SIZE", 50)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RequestStore:
    """Persistence for the CareRequest aggregate.

    Every read returns fully hydrated aggregates (case patients, their
    symptoms with catalog entries, and the service type). Writes to an
    existing request go through ``conditional_update`` only.
    """

    def __init__(self, db: Session):
        self.db = db

    # ---- transactions ----
    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Commit everything done inside the block, or nothing."""
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def rollback(self) -> None:
        self.db.rollback()

    # ---- writes ----
    def insert(self, care_request: CareRequest, case_patients: Sequence[CasePatient]) -> CareRequest:
        """Stage the request with all nested rows and flush, without committing."""
        for position, patient in enumerate(case_patients):
            patient.position = position
            for symptom_position, symptom in enumerate(patient.symptoms):
                symptom.position = symptom_position
        care_request.case_patients = list(case_patients)
        self.db.add(care_request)
        self.db.flush()
        return care_request

    def create(self, care_request: CareRequest, case_patients: Sequence[CasePatient]) -> CareRequest:
        with self.transaction():
            row = self.insert(care_request, case_patients)
        return self.find_by_id(row.id)

    def conditional_update(self, request_id: str, values: dict, *criteria) -> int:
        """Compare-and-swap on one row.

        Issues ``UPDATE care_requests SET ... WHERE id = :id AND <criteria>``,
        bumps the write sequence and returns the number of rows changed
        (0 or 1). The caller owns the transaction.
        """
        stmt = (
            update(CareRequest)
            .where(CareRequest.id == request_id, *criteria)
            .values(version=CareRequest.version + 1, updated_at=_utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        return result.rowcount

    # ---- reads ----
    def _aggregate(self):
        return (
            select(CareRequest)
            .options(
                joinedload(CareRequest.service_type),
                selectinload(CareRequest.case_patients)
                .selectinload(CasePatient.symptoms)
                .joinedload(CasePatientSymptom.symptom),
            )
            .execution_options(populate_existing=True)
        )

    def _all(self, stmt) -> List[CareRequest]:
        return list(self.db.execute(stmt).scalars().unique().all())

    def find_by_id(self, request_id: str) -> Optional[CareRequest]:
        stmt = self._aggregate().where(CareRequest.id == request_id)
        return self.db.execute(stmt).scalars().unique().one_or_none()

    def find_by_patient(self, patient_id: str, limit: Optional[int] = None) -> List[CareRequest]:
        stmt = (
            self._aggregate()
            .where(CareRequest.patient_id == patient_id)
            .order_by(CareRequest.created_at.desc())
        )
        if limit:
            stmt = stmt.limit(limit)
        return self._all(stmt)

    def find_by_provider(
        self,
        provider_id: str,
        statuses: Optional[Iterable[CareRequestStatus]] = None,
        limit: Optional[int] = None,
    ) -> List[CareRequest]:
        stmt = self._aggregate().where(CareRequest.provider_id == provider_id)
        if statuses is not None:
            stmt = stmt.where(CareRequest.status.in_(list(statuses)))
        stmt = stmt.order_by(CareRequest.created_at.desc())
        if limit:
            stmt = stmt.limit(limit)
        return self._all(stmt)

    def find_unclaimed(self, limit: int = UNCLAIMED_PAGE_SIZE) -> List[CareRequest]:
        stmt = (
            self._aggregate()
            .where(
                CareRequest.status.in_(list(UNCLAIMED_STATUSES)),
                CareRequest.provider_id.is_(None),
            )
            .order_by(CareRequest.created_at.desc())
            .limit(limit)
        )
        return self._all(stmt)

    def find_active_for_provider(self, provider_id: str) -> Optional[CareRequest]:
        rows = self.find_by_provider(provider_id, statuses=ACTIVE_VISIT_STATUSES, limit=1)
        return rows[0] if rows else None

    def find_completed_for_provider(self, provider_id: str, limit: int = HISTORY_PAGE_SIZE) -> List[CareRequest]:
        stmt = (
            self._aggregate()
            .where(
                CareRequest.provider_id == provider_id,
                CareRequest.status == CareRequestStatus.COMPLETED,
            )
            .order_by(CareRequest.completed_at.desc())
            .limit(limit)
        )
        return self._all(stmt)

    def find_all(self, status: Optional[CareRequestStatus] = None, limit: int = ADMIN_PAGE_SIZE) -> List[CareRequest]:
        stmt = self._aggregate()
        if status is not None:
            stmt = stmt.where(CareRequest.status == status)
        stmt = stmt.order_by(CareRequest.created_at.desc()).limit(limit)
        return self._all(stmt)
