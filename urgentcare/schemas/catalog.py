# urgentcare/schemas/catalog.py
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ServiceTypeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    base_price: float
    duration_minutes: int
    is_active: bool


class SymptomOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    category: Optional[str] = None
    severity_weight: int = 1
    requires_immediate_care: bool = False
