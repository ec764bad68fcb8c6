"""Read paths scoped to the caller."""
from __future__ import annotations

from typing import List, Optional

from sqlalchemy.orm import Session

from urgentcare.auth.schemas import Principal, Role
from urgentcare.models.care_request import CareRequestStatus
from urgentcare.schemas.care_requests import CareRequestOut
from urgentcare.services.errors import NotAuthorized, RequestNotFound, as_result
from urgentcare.services.lifecycle import to_out
from urgentcare.services.store import ADMIN_PAGE_SIZE, HISTORY_PAGE_SIZE, RequestStore


def can_view(principal: Principal, patient_id: str, provider_id: Optional[str]) -> bool:
    if principal.role == Role.ADMIN:
        return True
    if principal.role == Role.PATIENT:
        return patient_id == principal.id
    return provider_id is not None and provider_id == principal.id


class RequestViews:
    def __init__(self, db: Session):
        self.db = db
        self.store = RequestStore(db)

    @as_result
    def get(self, request_id: str, principal: Principal) -> CareRequestOut:
        """Owner patient, assigned provider or any admin."""
        row = self.store.find_by_id(request_id)
        if row is None:
            raise RequestNotFound(detail=f"id={request_id}")
        if not can_view(principal, row.patient_id, row.provider_id):
            raise NotAuthorized("You cannot view this request")
        return CareRequestOut.model_validate(row)

    @as_result
    def for_patient(self, principal: Principal) -> List[CareRequestOut]:
        return to_out(self.store.find_by_patient(principal.id))

    @as_result
    def active_for_provider(self, principal: Principal) -> Optional[CareRequestOut]:
        row = self.store.find_active_for_provider(principal.id)
        return CareRequestOut.model_validate(row) if row is not None else None

    @as_result
    def history_for_provider(self, principal: Principal, limit: int = HISTORY_PAGE_SIZE) -> List[CareRequestOut]:
        return to_out(self.store.find_completed_for_provider(principal.id, limit=limit))

    @as_result
    def list_all(self, status: Optional[CareRequestStatus] = None, limit: int = ADMIN_PAGE_SIZE) -> List[CareRequestOut]:
        return to_out(self.store.find_all(status=status, limit=limit))
