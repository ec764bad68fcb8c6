"""Status groupings shared by the store, the lifecycle engine and the views."""
from typing import Dict, FrozenSet

from urgentcare.models.care_request import CareRequestStatus as S

TERMINAL_STATUSES: FrozenSet[S] = frozenset({S.COMPLETED, S.CANCELLED})
UNCLAIMED_STATUSES: FrozenSet[S] = frozenset({S.PENDING, S.SEARCHING})
# provider_id is set exactly in these
ASSIGNED_STATUSES: FrozenSet[S] = frozenset({S.MATCHED, S.EN_ROUTE, S.ARRIVED, S.IN_PROGRESS, S.COMPLETED})
ACTIVE_VISIT_STATUSES: FrozenSet[S] = frozenset({S.MATCHED, S.EN_ROUTE, S.ARRIVED, S.IN_PROGRESS})
CANCELLABLE_STATUSES: FrozenSet[S] = frozenset({S.PENDING, S.SEARCHING, S.MATCHED})
NON_TERMINAL_STATUSES: FrozenSet[S] = frozenset(S) - TERMINAL_STATUSES

# Patient-facing headline per status. Must cover every member.
STATUS_HEADLINES: Dict[S, str] = {
    S.PENDING: "Submitting your request",
    S.SEARCHING: "Finding a provider near you",
    S.MATCHED: "Provider assigned",
    S.EN_ROUTE: "Provider is on the way",
    S.ARRIVED: "Provider has arrived",
    S.IN_PROGRESS: "Visit in progress",
    S.COMPLETED: "Visit completed",
    S.CANCELLED: "Request cancelled",
}

if set(STATUS_HEADLINES) != set(S):
    raise RuntimeError("STATUS_HEADLINES must cover every CareRequestStatus")


def is_terminal(status: S) -> bool:
    return status in TERMINAL_STATUSES


def status_headline(status: S) -> str:
    return STATUS_HEADLINES[S(status)]
