# urgentcare/routes/admin_routes.py
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from urgentcare.auth.deps import require_admin
from urgentcare.auth.schemas import Principal
from urgentcare.models.care_request import CareRequestStatus
from urgentcare.routes.deps import get_lifecycle, get_stats, get_views
from urgentcare.schemas.care_requests import AssignIn, CancelIn, CareRequestOut
from urgentcare.schemas.stats import AdminStatsOut
from urgentcare.services.lifecycle import LifecycleEngine
from urgentcare.services.stats import StatsService
from urgentcare.services.store import ADMIN_PAGE_SIZE
from urgentcare.services.views import RequestViews

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])
logger = logging.getLogger("urgentcare")


@router.get("/requests", response_model=List[CareRequestOut])
def list_requests(
    status: Optional[CareRequestStatus] = None,
    limit: int = Query(ADMIN_PAGE_SIZE, ge=1, le=500),
    views: RequestViews = Depends(get_views),
):
    return views.list_all(status=status, limit=limit).unwrap()


@router.get("/requests/{request_id}", response_model=CareRequestOut)
def get_request_details(
    request_id: str,
    principal: Principal = Depends(require_admin),
    views: RequestViews = Depends(get_views),
):
    return views.get(request_id, principal).unwrap()


@router.post("/requests/{request_id}/assign", response_model=CareRequestOut)
def assign_provider(
    request_id: str,
    payload: AssignIn,
    principal: Principal = Depends(require_admin),
    engine: LifecycleEngine = Depends(get_lifecycle),
):
    """Force-assign a provider regardless of who holds the request."""
    return engine.admin_reassign(request_id, principal, payload.provider_id).unwrap()


@router.post("/requests/{request_id}/cancel", response_model=CareRequestOut)
def cancel_request(
    request_id: str,
    payload: Optional[CancelIn] = None,
    principal: Principal = Depends(require_admin),
    engine: LifecycleEngine = Depends(get_lifecycle),
):
    reason = payload.reason if payload else None
    return engine.cancel(request_id, principal, reason).unwrap()


@router.get("/stats", response_model=AdminStatsOut)
def get_dashboard_stats(stats: StatsService = Depends(get_stats)):
    return stats.admin_dashboard().unwrap()
