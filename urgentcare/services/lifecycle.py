"""Care-request state machine.

Every mutation of an existing request goes through ``LifecycleEngine._apply``:
existence, then actor, then status are checked against a fresh read, and the
write itself is one conditional UPDATE guarded on the same status (and on
provider ownership where it applies). A request that moved between the read
and the write updates zero rows and the caller gets a typed error instead of
a silent success.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from urgentcare.auth.schemas import Principal, Role
from urgentcare.models.care_request import (
    CancelledBy,
    CareRequest,
    CareRequestStatus as S,
    CasePatient,
    CasePatientSymptom,
)
from urgentcare.models.catalog import ServiceType, Symptom
from urgentcare.schemas.care_requests import CareRequestCreate, CareRequestOut
from urgentcare.services import pricing
from urgentcare.services.change_feed import ChangeFeed, is_unclaimed
from urgentcare.services.errors import (
    CareError,
    NotAuthorized,
    PreconditionFailed,
    RequestAlreadyClaimed,
    RequestNotFound,
    ValidationFailed,
    as_result,
)
from urgentcare.services.status import CANCELLABLE_STATUSES, NON_TERMINAL_STATUSES, UNCLAIMED_STATUSES
from urgentcare.services.store import RequestStore

logger = logging.getLogger("urgentcare")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Operation(str, enum.Enum):
    SUBMIT = "submit"
    CLAIM = "claim"
    START_EN_ROUTE = "start_en_route"
    MARK_ARRIVED = "mark_arrived"
    START_VISIT = "start_visit"
    COMPLETE = "complete"
    CANCEL = "cancel"
    ADMIN_REASSIGN = "admin_reassign"

    @classmethod
    def from_path(cls, segment: str) -> "Operation":
        """``start-en-route`` -> START_EN_ROUTE"""
        return cls(segment.replace("-", "_"))


@dataclass(frozen=True)
class Transition:
    operation: Operation
    roles: FrozenSet[Role]
    sources: FrozenSet[S]
    target: S
    # timestamp column set when the transition lands
    stamp: Optional[str] = None
    # provider operations are restricted to the provider assigned to the request
    assigned_provider_only: bool = False


def _t(op, roles, sources, target, stamp=None, assigned_provider_only=False) -> Transition:
    return Transition(op, frozenset(roles), frozenset(sources), target, stamp, assigned_provider_only)


TRANSITIONS: Dict[Operation, Transition] = {
    Operation.SUBMIT: _t(Operation.SUBMIT, {Role.PATIENT}, {S.PENDING}, S.SEARCHING),
    Operation.CLAIM: _t(Operation.CLAIM, {Role.PROVIDER}, UNCLAIMED_STATUSES, S.MATCHED, "matched_at"),
    Operation.START_EN_ROUTE: _t(Operation.START_EN_ROUTE, {Role.PROVIDER}, {S.MATCHED}, S.EN_ROUTE, assigned_provider_only=True),
    Operation.MARK_ARRIVED: _t(Operation.MARK_ARRIVED, {Role.PROVIDER}, {S.EN_ROUTE}, S.ARRIVED, "arrived_at", True),
    Operation.START_VISIT: _t(Operation.START_VISIT, {Role.PROVIDER}, {S.ARRIVED}, S.IN_PROGRESS, assigned_provider_only=True),
    Operation.COMPLETE: _t(Operation.COMPLETE, {Role.PROVIDER}, {S.IN_PROGRESS}, S.COMPLETED, "completed_at", True),
    Operation.CANCEL: _t(Operation.CANCEL, {Role.PATIENT, Role.ADMIN}, CANCELLABLE_STATUSES, S.CANCELLED, "cancelled_at"),
    Operation.ADMIN_REASSIGN: _t(Operation.ADMIN_REASSIGN, {Role.ADMIN}, NON_TERMINAL_STATUSES, S.MATCHED, "matched_at"),
}

# operations reachable through advance_status
PROVIDER_OPERATIONS: FrozenSet[Operation] = frozenset(
    {Operation.START_EN_ROUTE, Operation.MARK_ARRIVED, Operation.START_VISIT, Operation.COMPLETE}
)


def _status_names(statuses: Iterable[S]) -> str:
    return ", ".join(sorted(s.value for s in statuses))


class LifecycleEngine:
    def __init__(self, db: Session, feed: Optional[ChangeFeed] = None):
        self.db = db
        self.store = RequestStore(db)
        self.feed = feed

    # ---- creation ----
    @as_result
    def submit(self, principal: Principal, payload: CareRequestCreate) -> CareRequestOut:
        """Persist a new request with its case patients and symptoms, then open it for matching.

        Insert (pending) and the pending -> searching step share one
        transaction, so observers never see a half-written submission.
        """
        if principal.role != Role.PATIENT:
            raise NotAuthorized("Only patients can request care")

        service_type = self.db.get(ServiceType, payload.service_type_id)
        if service_type is None or not service_type.is_active:
            raise ValidationFailed(detail=f"Unknown or inactive service type: {payload.service_type_id}")
        self._check_symptom_ids(payload)

        price = pricing.quote(
            service_type.base_price,
            len(payload.case_patients),
            donation_amount=payload.donation_amount,
        )
        location = payload.location
        row = CareRequest(
            patient_id=principal.id,
            service_type_id=service_type.id,
            status=S.PENDING,
            address_line1=location.address_line1,
            address_line2=location.address_line2,
            city=location.city,
            state=location.state,
            zip_code=location.zip_code,
            latitude=location.latitude,
            longitude=location.longitude,
            patient_notes=payload.patient_notes,
            **price.as_columns(),
        )
        case_patients = [
            CasePatient(
                name=p.name,
                relationship=p.relationship,
                date_of_birth=p.date_of_birth.isoformat() if p.date_of_birth else None,
                gender=p.gender,
                notes=p.notes,
                symptoms=[
                    CasePatientSymptom(
                        symptom_id=s.symptom_id,
                        custom_symptom=s.custom_symptom,
                        severity=s.severity,
                        duration=s.duration,
                        notes=s.notes,
                    )
                    for s in p.symptoms
                ],
            )
            for p in payload.case_patients
        ]

        opened = TRANSITIONS[Operation.SUBMIT]
        try:
            with self.store.transaction():
                request_id = self.store.insert(row, case_patients).id
                changed = self.store.conditional_update(
                    request_id, {"status": opened.target}, CareRequest.status.in_(list(opened.sources))
                )
                if changed != 1:
                    raise PreconditionFailed("The new request could not be opened for matching")
        except IntegrityError as err:
            logger.warning({"function": "lifecycle.submit", "status": "integrity_error", "error": str(err.orig)})
            raise ValidationFailed(detail="The request could not be stored as submitted") from err

        out = self._reload(request_id)
        self._publish(out, kind="created", was_unclaimed=False)
        logger.info({
            "function": "lifecycle.submit",
            "status": "created",
            "request_id": out.id,
            "case_patients": len(out.case_patients),
            "total_price": out.total_price,
        })
        return out

    def _check_symptom_ids(self, payload: CareRequestCreate) -> None:
        wanted = {s.symptom_id for p in payload.case_patients for s in p.symptoms if s.symptom_id}
        if not wanted:
            return
        found = set(self.db.execute(select(Symptom.id).where(Symptom.id.in_(wanted))).scalars())
        missing = sorted(wanted - found)
        if missing:
            raise ValidationFailed(detail=[f"Unknown symptom id: {sid}" for sid in missing])

    # ---- transitions ----
    @as_result
    def claim(self, request_id: str, principal: Principal) -> CareRequestOut:
        return self._apply(
            TRANSITIONS[Operation.CLAIM],
            request_id,
            principal,
            values={"provider_id": principal.id},
            criteria=[CareRequest.provider_id.is_(None)],
        )

    @as_result
    def advance_status(
        self,
        request_id: str,
        principal: Principal,
        operation: Operation,
        notes: Optional[str] = None,
    ) -> CareRequestOut:
        """Move an assigned request one step forward (provider only)."""
        operation = Operation(operation)
        if operation not in PROVIDER_OPERATIONS:
            raise ValidationFailed(detail=f"Not a provider status operation: {operation.value}")
        values = {}
        if operation == Operation.COMPLETE and notes is not None:
            values["provider_notes"] = notes
        return self._apply(
            TRANSITIONS[operation],
            request_id,
            principal,
            values=values,
            criteria=[CareRequest.provider_id == principal.id],
        )

    @as_result
    def cancel(self, request_id: str, principal: Principal, reason: Optional[str] = None) -> CareRequestOut:
        by = CancelledBy.ADMIN if principal.role == Role.ADMIN else CancelledBy.PATIENT
        criteria = []
        if by == CancelledBy.PATIENT:
            criteria.append(CareRequest.patient_id == principal.id)
        return self._apply(
            TRANSITIONS[Operation.CANCEL],
            request_id,
            principal,
            values={"cancellation_reason": reason, "cancelled_by": by, "provider_id": None},
            criteria=criteria,
        )

    @as_result
    def admin_reassign(self, request_id: str, principal: Principal, provider_id: str) -> CareRequestOut:
        """Force-assign a provider, bypassing claim exclusivity."""
        return self._apply(
            TRANSITIONS[Operation.ADMIN_REASSIGN],
            request_id,
            principal,
            values={"provider_id": provider_id, "arrived_at": None},
        )

    # ---- internals ----
    def _authorize(self, transition: Transition, row: CareRequest, principal: Principal) -> None:
        if principal.role not in transition.roles:
            raise NotAuthorized(
                f"{transition.operation.value} requires one of the roles: {_status_names(transition.roles)}"
            )
        if transition.assigned_provider_only and row.provider_id != principal.id:
            raise NotAuthorized("This request is not assigned to you")
        if principal.role == Role.PATIENT and row.patient_id != principal.id:
            raise NotAuthorized("This request belongs to another patient")

    def _apply(
        self,
        transition: Transition,
        request_id: str,
        principal: Principal,
        values: Optional[dict] = None,
        criteria: Sequence = (),
    ) -> CareRequestOut:
        row = self.store.find_by_id(request_id)
        if row is None:
            raise RequestNotFound(detail=f"id={request_id}")
        self._authorize(transition, row, principal)
        if transition.operation == Operation.CLAIM and row.provider_id is not None:
            raise RequestAlreadyClaimed()
        if row.status not in transition.sources:
            raise PreconditionFailed(
                detail=f"{transition.operation.value} is allowed from [{_status_names(transition.sources)}], "
                f"request is {row.status.value}"
            )

        was_unclaimed = is_unclaimed(row)
        updates = dict(values or {})
        updates["status"] = transition.target
        if transition.stamp:
            updates[transition.stamp] = _utcnow()

        with self.store.transaction():
            changed = self.store.conditional_update(
                request_id,
                updates,
                CareRequest.status.in_(list(transition.sources)),
                *criteria,
            )
            if changed != 1:
                raise self._lost_race(transition, request_id, principal)

        out = self._reload(request_id)
        self._publish(out, kind="updated", was_unclaimed=was_unclaimed)
        logger.info({
            "function": f"lifecycle.{transition.operation.value}",
            "status": out.status.value,
            "request_id": out.id,
            "actor": principal.id,
            "role": principal.role.value,
            "version": out.version,
        })
        return out

    def _lost_race(self, transition: Transition, request_id: str, principal: Principal) -> CareError:
        """Name the error for a conditional write that matched no row."""
        self.db.rollback()
        current = self.store.find_by_id(request_id)
        logger.info({
            "function": f"lifecycle.{transition.operation.value}",
            "status": "lost_race",
            "request_id": request_id,
            "actor": principal.id,
            "current": current.status.value if current is not None else None,
        })
        if current is None:
            return RequestNotFound(detail=f"id={request_id}")
        if transition.operation == Operation.CLAIM and current.provider_id is not None:
            return RequestAlreadyClaimed()
        if transition.assigned_provider_only and current.provider_id != principal.id:
            return NotAuthorized("This request is not assigned to you")
        return PreconditionFailed(detail=f"request is {current.status.value}")

    def _reload(self, request_id: str) -> CareRequestOut:
        row = self.store.find_by_id(request_id)
        if row is None:
            raise RequestNotFound(detail=f"id={request_id}")
        return CareRequestOut.model_validate(row)

    def _publish(self, out: CareRequestOut, kind: str, was_unclaimed: bool) -> None:
        if self.feed is not None:
            self.feed.publish(out, kind=kind, was_unclaimed=was_unclaimed)


def to_out(rows: Iterable[CareRequest]) -> List[CareRequestOut]:
    return [CareRequestOut.model_validate(r) for r in rows]
