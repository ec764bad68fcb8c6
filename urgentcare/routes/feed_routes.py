# urgentcare/routes/feed_routes.py
"""WebSocket transport for the change feed.

    ws://.../api/feed/ws?key=request:<id>&token=<jwt>
    ws://.../api/feed/ws?key=unclaimed&token=<jwt>   (providers, admins)
    ws://.../api/feed/ws?key=all&token=<jwt>         (admins)

The socket first receives ``{"type": "subscribed", "key": ...}`` and then one
``{"type": "change", ...}`` message per accepted write. Errors are sent as the
usual envelope with ``"type": "error"`` before the socket is closed.
"""
import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from urgentcare.auth import jwt
from urgentcare.auth.schemas import Principal, Role
from urgentcare.db.session import get_db
from urgentcare.services.change_feed import SCOPE_ALL, SCOPE_REQUEST, SCOPE_UNCLAIMED, ChangeFeed, FeedKey
from urgentcare.services.errors import CareError, NotAuthenticated, NotAuthorized, RequestNotFound, ValidationFailed
from urgentcare.services.store import RequestStore
from urgentcare.services.views import can_view

router = APIRouter(prefix="/api/feed", tags=["feed"])
logger = logging.getLogger("urgentcare")

# application-defined close codes (4000-4999), mirroring the HTTP statuses
_CLOSE_CODES = {401: 4401, 403: 4403, 404: 4404, 422: 4422}


def authorize_key(principal: Principal, key: FeedKey, db) -> None:
    if key.scope == SCOPE_ALL:
        if principal.role != Role.ADMIN:
            raise NotAuthorized("Only admins can follow every request")
        return
    if key.scope == SCOPE_UNCLAIMED:
        if principal.role not in (Role.PROVIDER, Role.ADMIN):
            raise NotAuthorized("Only providers can follow the open request pool")
        return
    if key.scope == SCOPE_REQUEST:
        row = RequestStore(db).find_by_id(key.request_id)
        if row is None:
            raise RequestNotFound(detail=f"id={key.request_id}")
        if not can_view(principal, row.patient_id, row.provider_id):
            raise NotAuthorized("You cannot follow this request")


def _resolve(websocket: WebSocket, db) -> FeedKey:
    principal = jwt.principal_from_token(websocket.query_params.get("token"))
    if principal is None:
        raise NotAuthenticated("Missing or invalid token")
    try:
        key = FeedKey.parse(websocket.query_params.get("key", ""))
    except ValueError as err:
        raise ValidationFailed(detail=str(err)) from err
    authorize_key(principal, key, db)
    return key


def _open_session(websocket: WebSocket):
    # honour test/dependency overrides of get_db
    provider = websocket.app.dependency_overrides.get(get_db, get_db)
    return provider()


@router.websocket("/ws")
async def feed_socket(websocket: WebSocket):
    await websocket.accept()
    feed: ChangeFeed = websocket.app.state.change_feed

    sessions = _open_session(websocket)
    db = next(sessions)
    try:
        key = _resolve(websocket, db)
    except CareError as err:
        await websocket.send_json({"type": "error", **err.to_dict()})
        await websocket.close(code=_CLOSE_CODES.get(err.http_status, 4400))
        return
    finally:
        sessions.close()

    subscription = feed.subscribe(key, loop=asyncio.get_running_loop())
    pump: Optional[asyncio.Task] = None
    try:
        await websocket.send_json({"type": "subscribed", "key": str(key)})

        async def _pump():
            while True:
                event = await subscription.receive()
                await websocket.send_json({"type": "change", **event.to_dict()})

        pump = asyncio.create_task(_pump())
        # inbound frames are ignored; the loop only watches for disconnect
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info({"function": "feed_socket", "status": "disconnected", "key": str(key)})
    finally:
        if pump is not None:
            pump.cancel()
        subscription.close()
