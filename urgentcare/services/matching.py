"""Provider-facing pool of open requests."""
from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from urgentcare.auth.schemas import Principal, Role
from urgentcare.schemas.care_requests import CareRequestOut, DeclineOut
from urgentcare.services.change_feed import ChangeFeed
from urgentcare.services.errors import NotAuthorized, RequestNotFound, Result, as_result
from urgentcare.services.lifecycle import LifecycleEngine, to_out
from urgentcare.services.store import UNCLAIMED_PAGE_SIZE, RequestStore

logger = logging.getLogger("urgentcare")


class MatchingGateway:
    """Lists unclaimed requests and hands them to providers one at a time.

    No geographic filtering is applied; ranking by urgency or price is left
    to the client, which receives the full aggregate.
    """

    def __init__(self, db: Session, feed: Optional[ChangeFeed] = None, page_size: int = UNCLAIMED_PAGE_SIZE):
        self.db = db
        self.store = RequestStore(db)
        self.engine = LifecycleEngine(db, feed)
        self.page_size = page_size

    @as_result
    def list_unclaimed(self) -> List[CareRequestOut]:
        return to_out(self.store.find_unclaimed(limit=self.page_size))

    def claim(self, request_id: str, principal: Principal) -> Result[CareRequestOut]:
        """Single conditional write on ``provider_id IS NULL``; one winner per request."""
        return self.engine.claim(request_id, principal)

    @as_result
    def decline(self, request_id: str, principal: Principal) -> DeclineOut:
        # soft decline: nothing is stored, the request stays open to everyone else
        if principal.role != Role.PROVIDER:
            raise NotAuthorized("Only providers can decline requests")
        row = self.store.find_by_id(request_id)
        if row is None:
            raise RequestNotFound(detail=f"id={request_id}")
        logger.info({
            "function": "matching.decline",
            "request_id": request_id,
            "provider_id": principal.id,
            "status": row.status.value,
        })
        return DeclineOut(request_id=request_id)
