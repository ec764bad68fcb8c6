# urgentcare/schemas/care_requests.py
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from urgentcare.models.care_request import CancelledBy, CareRequestStatus
from urgentcare.schemas.catalog import ServiceTypeOut, SymptomOut
from urgentcare.services.status import status_headline as headline_for
from urgentcare.services.urgency import Urgency, classify


# ---------- Input ----------
class SymptomIn(BaseModel):
    """One reported symptom: a catalog reference or free text, never both."""

    symptom_id: Optional[str] = Field(default=None, max_length=36)
    custom_symptom: Optional[str] = Field(default=None, max_length=255)
    severity: int = Field(..., ge=1, le=10, description="Self-reported severity, 1-10")
    duration: Optional[str] = Field(default=None, max_length=60)
    notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("custom_symptom")
    @classmethod
    def _blank_is_missing(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @model_validator(mode="after")
    def _exactly_one_source(self):
        if (self.symptom_id is None) == (self.custom_symptom is None):
            raise ValueError("Provide exactly one of symptom_id or custom_symptom")
        return self


class CasePatientIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    relationship: str = Field(..., min_length=1, max_length=60, description="Relationship to the requester, e.g. 'self', 'child'")
    date_of_birth: Optional[date] = None
    gender: Optional[str] = Field(default=None, max_length=30)
    notes: Optional[str] = Field(default=None, max_length=2000)
    symptoms: List[SymptomIn] = Field(..., min_length=1)


class LocationIn(BaseModel):
    address_line1: str = Field(..., min_length=1, max_length=255)
    address_line2: Optional[str] = Field(default=None, max_length=255)
    city: str = Field(..., min_length=1, max_length=120)
    state: str = Field(..., min_length=1, max_length=60)
    zip_code: str = Field(..., min_length=1, max_length=20)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class CareRequestCreate(BaseModel):
    service_type_id: str = Field(..., min_length=1, max_length=36)
    location: LocationIn
    case_patients: List[CasePatientIn] = Field(..., min_length=1, max_length=10)
    patient_notes: Optional[str] = Field(default=None, max_length=4000)
    donation_amount: Decimal = Field(default=Decimal("0"), ge=0, max_digits=10, decimal_places=2)


class CancelIn(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class CompleteIn(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=8000)


class AssignIn(BaseModel):
    provider_id: str = Field(..., min_length=1, max_length=36)


# ---------- Output ----------
class CasePatientSymptomOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    symptom_id: Optional[str] = None
    custom_symptom: Optional[str] = None
    severity: int
    duration: Optional[str] = None
    notes: Optional[str] = None
    symptom: Optional[SymptomOut] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def display_name(self) -> str:
        if self.symptom is not None:
            return self.symptom.name
        return self.custom_symptom or ""


class CasePatientOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    relationship: str
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    notes: Optional[str] = None
    symptoms: List[CasePatientSymptomOut] = []


class CareRequestOut(BaseModel):
    """Full hydrated aggregate, as returned by reads and pushed by the change feed."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    patient_id: str
    provider_id: Optional[str] = None
    service_type_id: str
    status: CareRequestStatus
    version: int

    address_line1: str
    address_line2: Optional[str] = None
    city: str
    state: str
    zip_code: str
    latitude: float
    longitude: float

    created_at: datetime
    updated_at: datetime
    matched_at: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[CancelledBy] = None

    base_price: float
    additional_fees: float
    donation_amount: float
    total_price: float
    insurance_coverage: float
    patient_responsibility: float

    patient_notes: Optional[str] = None
    provider_notes: Optional[str] = None

    service_type: Optional[ServiceTypeOut] = None
    case_patients: List[CasePatientOut] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def urgency(self) -> Urgency:
        return classify(self.case_patients)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status_headline(self) -> str:
        return headline_for(self.status)


class DeclineOut(BaseModel):
    request_id: str
    declined: bool = True
