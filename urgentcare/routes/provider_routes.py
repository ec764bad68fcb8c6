# urgentcare/routes/provider_routes.py
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends

from urgentcare.auth.deps import require_provider, require_provider_or_admin
from urgentcare.auth.schemas import Principal
from urgentcare.routes.deps import get_lifecycle, get_matching, get_stats, get_views
from urgentcare.schemas.care_requests import CareRequestOut, CompleteIn, DeclineOut
from urgentcare.schemas.stats import ProviderStatsOut
from urgentcare.services.errors import ValidationFailed
from urgentcare.services.lifecycle import PROVIDER_OPERATIONS, LifecycleEngine, Operation
from urgentcare.services.matching import MatchingGateway
from urgentcare.services.stats import StatsService
from urgentcare.services.views import RequestViews

router = APIRouter(prefix="/api/provider", tags=["provider"])
logger = logging.getLogger("urgentcare")


@router.get("/requests/available", response_model=List[CareRequestOut])
def list_available_requests(
    principal: Principal = Depends(require_provider_or_admin),
    gateway: MatchingGateway = Depends(get_matching),
):
    """Unclaimed requests, newest first. Not filtered by distance."""
    return gateway.list_unclaimed().unwrap()


@router.get("/requests/active", response_model=Optional[CareRequestOut])
def get_active_request(
    principal: Principal = Depends(require_provider),
    views: RequestViews = Depends(get_views),
):
    return views.active_for_provider(principal).unwrap()


@router.get("/requests/history", response_model=List[CareRequestOut])
def get_history(
    principal: Principal = Depends(require_provider),
    views: RequestViews = Depends(get_views),
):
    return views.history_for_provider(principal).unwrap()


@router.get("/stats", response_model=ProviderStatsOut)
def get_dashboard_stats(
    principal: Principal = Depends(require_provider),
    stats: StatsService = Depends(get_stats),
):
    return stats.provider_dashboard(principal).unwrap()


@router.post("/requests/{request_id}/claim", response_model=CareRequestOut)
def claim_request(
    request_id: str,
    principal: Principal = Depends(require_provider),
    gateway: MatchingGateway = Depends(get_matching),
):
    return gateway.claim(request_id, principal).unwrap()


@router.post("/requests/{request_id}/decline", response_model=DeclineOut)
def decline_request(
    request_id: str,
    principal: Principal = Depends(require_provider),
    gateway: MatchingGateway = Depends(get_matching),
):
    return gateway.decline(request_id, principal).unwrap()


@router.post("/requests/{request_id}/{step}", response_model=CareRequestOut)
def advance_request(
    request_id: str,
    step: str,
    payload: Optional[CompleteIn] = None,
    principal: Principal = Depends(require_provider),
    engine: LifecycleEngine = Depends(get_lifecycle),
):
    """``start-en-route``, ``mark-arrived``, ``start-visit`` or ``complete``."""
    try:
        operation = Operation.from_path(step)
    except ValueError:
        operation = None
    if operation not in PROVIDER_OPERATIONS:
        raise ValidationFailed(detail=f"Unknown status step: {step}")
    notes = payload.notes if payload else None
    return engine.advance_status(request_id, principal, operation, notes=notes).unwrap()
