"""Urgency classification for provider-facing views.

Derived on every read from the current symptom set; never stored.
"""
from __future__ import annotations

import enum
from typing import Iterable, List, Optional

HIGH_SEVERITY_THRESHOLD = 7
MEDIUM_SEVERITY_THRESHOLD = 4


class Urgency(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def _flags_immediate_care(symptom_row) -> bool:
    catalog = getattr(symptom_row, "symptom", None)
    return bool(catalog is not None and getattr(catalog, "requires_immediate_care", False))


def patient_average_severity(symptom_rows: Iterable) -> Optional[float]:
    severities: List[int] = [int(s.severity) for s in symptom_rows]
    if not severities:
        return None
    return sum(severities) / len(severities)


def classify(case_patients: Iterable) -> Urgency:
    """Classify a request from its case patients and their symptoms.

    A catalog symptom flagged ``requires_immediate_care`` forces HIGH. Otherwise
    the sickest case patient (highest average severity) decides: above 7 is
    HIGH, above 4 MEDIUM, anything else LOW.
    """
    worst: Optional[float] = None
    for patient in case_patients:
        rows = list(getattr(patient, "symptoms", None) or [])
        if any(_flags_immediate_care(row) for row in rows):
            return Urgency.HIGH
        avg = patient_average_severity(rows)
        if avg is not None and (worst is None or avg > worst):
            worst = avg
    if worst is None:
        return Urgency.LOW
    if worst > HIGH_SEVERITY_THRESHOLD:
        return Urgency.HIGH
    if worst > MEDIUM_SEVERITY_THRESHOLD:
        return Urgency.MEDIUM
    return Urgency.LOW
