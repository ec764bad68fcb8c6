# urgentcare/routes/care_request_routes.py
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Request, status

from urgentcare.auth.deps import get_current_principal, require_patient
from urgentcare.auth.schemas import Principal
from urgentcare.routes.deps import get_lifecycle, get_views
from urgentcare.schemas.care_requests import CancelIn, CareRequestCreate, CareRequestOut
from urgentcare.services.lifecycle import LifecycleEngine
from urgentcare.services.views import RequestViews
from urgentcare.utils.rate_limit import CREATE_RATE_LIMIT, limiter

router = APIRouter(prefix="/api/care-requests", tags=["care-requests"])
logger = logging.getLogger("urgentcare")


@router.post("", response_model=CareRequestOut, status_code=status.HTTP_201_CREATED)
@limiter.limit(CREATE_RATE_LIMIT)
def create_care_request(
    request: Request,
    payload: CareRequestCreate,
    principal: Principal = Depends(require_patient),
    engine: LifecycleEngine = Depends(get_lifecycle),
):
    """Submit a request; it is returned already open for matching (``searching``)."""
    return engine.submit(principal, payload).unwrap()


@router.get("", response_model=List[CareRequestOut])
def list_my_requests(
    principal: Principal = Depends(require_patient),
    views: RequestViews = Depends(get_views),
):
    return views.for_patient(principal).unwrap()


@router.get("/{request_id}", response_model=CareRequestOut)
def get_care_request(
    request_id: str,
    principal: Principal = Depends(get_current_principal),
    views: RequestViews = Depends(get_views),
):
    return views.get(request_id, principal).unwrap()


@router.post("/{request_id}/cancel", response_model=CareRequestOut)
def cancel_care_request(
    request_id: str,
    payload: Optional[CancelIn] = None,
    principal: Principal = Depends(require_patient),
    engine: LifecycleEngine = Depends(get_lifecycle),
):
    reason = payload.reason if payload else None
    return engine.cancel(request_id, principal, reason).unwrap()
