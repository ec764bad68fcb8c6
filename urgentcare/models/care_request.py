# urgentcare/models/care_request.py
import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy import orm
from sqlalchemy.orm import Mapped, mapped_column, relationship

from urgentcare.db.session import Base
from urgentcare.utils.encryption import EncryptedText


class CareRequestStatus(str, enum.Enum):
    PENDING = "pending"
    SEARCHING = "searching"
    MATCHED = "matched"
    EN_ROUTE = "en_route"
    ARRIVED = "arrived"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CancelledBy(str, enum.Enum):
    PATIENT = "patient"
    ADMIN = "admin"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_column(enum_cls, length: int):
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


_ASSIGNED = "'matched', 'en_route', 'arrived', 'in_progress', 'completed'"


class CareRequest(Base):
    __tablename__ = "care_requests"
    __table_args__ = (
        CheckConstraint(
            f"(provider_id IS NOT NULL) = (status IN ({_ASSIGNED}))",
            name="ck_care_requests_provider_matches_status",
        ),
        CheckConstraint(
            "(completed_at IS NOT NULL) = (status = 'completed')",
            name="ck_care_requests_completed_at",
        ),
        CheckConstraint(
            "(cancelled_at IS NOT NULL) = (status = 'cancelled')",
            name="ck_care_requests_cancelled_at",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    patient_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    provider_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    service_type_id: Mapped[str] = mapped_column(String(36), ForeignKey("service_types.id"), nullable=False)

    status: Mapped[CareRequestStatus] = mapped_column(
        _enum_column(CareRequestStatus, 20),
        nullable=False,
        default=CareRequestStatus.PENDING,
        index=True,
    )

    # location (immutable after creation)
    address_line1: Mapped[str] = mapped_column(String(255), nullable=False)
    address_line2: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    city: Mapped[str] = mapped_column(String(120), nullable=False)
    state: Mapped[str] = mapped_column(String(60), nullable=False)
    zip_code: Mapped[str] = mapped_column(String(20), nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    matched_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    arrived_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancelled_by: Mapped[Optional[CancelledBy]] = mapped_column(_enum_column(CancelledBy, 10), nullable=True)

    # pricing, computed by the caller before insert
    base_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    additional_fees: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    donation_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    insurance_coverage: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    patient_responsibility: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    patient_notes: Mapped[Optional[str]] = mapped_column(EncryptedText, nullable=True)
    provider_notes: Mapped[Optional[str]] = mapped_column(EncryptedText, nullable=True)

    # write sequence; bumped by every accepted transition
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    service_type = relationship("ServiceType", lazy="joined")
    case_patients: Mapped[List["CasePatient"]] = relationship(
        "CasePatient",
        back_populates="care_request",
        cascade="all, delete-orphan",
        order_by="CasePatient.position",
    )


class CasePatient(Base):
    __tablename__ = "case_patients"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    care_request_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("care_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    relationship: Mapped[str] = mapped_column(String(60), nullable=False)
    date_of_birth: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    gender: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(EncryptedText, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    # `relationship` is a column on this table, so the ORM helper is reached through `orm`
    care_request: Mapped["CareRequest"] = orm.relationship("CareRequest", back_populates="case_patients")
    symptoms: Mapped[List["CasePatientSymptom"]] = orm.relationship(
        "CasePatientSymptom",
        back_populates="case_patient",
        cascade="all, delete-orphan",
        order_by="CasePatientSymptom.position",
    )


class CasePatientSymptom(Base):
    __tablename__ = "case_patient_symptoms"
    __table_args__ = (
        CheckConstraint("severity BETWEEN 1 AND 10", name="ck_case_patient_symptoms_severity"),
        CheckConstraint(
            "(symptom_id IS NULL) <> (custom_symptom IS NULL)",
            name="ck_case_patient_symptoms_one_source",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    case_patient_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("case_patients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    symptom_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("symptoms.id"), nullable=True)
    custom_symptom: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    severity: Mapped[int] = mapped_column(Integer, nullable=False)
    duration: Mapped[Optional[str]] = mapped_column(String(60), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    case_patient: Mapped["CasePatient"] = relationship("CasePatient", back_populates="symptoms")
    symptom = relationship("Symptom", lazy="joined")
