import logging
from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from urgentcare.middleware.tracing import TRACE_ID_CTX_VAR
from urgentcare.services.errors import CareError, ValidationFailed

logger = logging.getLogger("urgentcare")


def status_to_code(status_code: int) -> str:
    mapping = {
        400: "BAD_REQUEST",
        401: "NOT_AUTHENTICATED",
        403: "NOT_AUTHORIZED",
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
        409: "CONFLICT",
        422: "VALIDATION_FAILED",
        429: "TOO_MANY_REQUESTS",
        500: "INTERNAL_SERVER_ERROR",
        503: "STORE_UNAVAILABLE",
    }
    return mapping.get(status_code, f"HTTP_{status_code}")


def _trace_id(request: Request) -> str:
    return TRACE_ID_CTX_VAR.get() or getattr(request.state, "trace_id", "")


async def handle_care_error(request: Request, exc: CareError):
    body = exc.to_dict()
    body["trace_id"] = _trace_id(request)
    if exc.http_status >= 500:
        logger.warning({"function": "handle_care_error", "code": exc.code, "path": str(request.url.path)})
    return JSONResponse(status_code=exc.http_status, content=body)


async def handle_validation_error(request: Request, exc: RequestValidationError):
    details = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        details.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    error = ValidationFailed(detail=details)
    return await handle_care_error(request, error)


async def handle_http_exception(request: Request, exc: HTTPException):
    detail: Any = exc.detail
    message = detail if isinstance(detail, str) else "HTTP error"
    body = {"code": status_to_code(exc.status_code), "message": message, "trace_id": _trace_id(request)}
    if detail is not None and not isinstance(detail, str):
        body["details"] = detail
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


async def handle_unhandled_exception(request: Request, exc: Exception):
    logger.exception({"function": "handle_unhandled_exception", "path": str(request.url.path)})
    body = {
        "code": "INTERNAL_SERVER_ERROR",
        "message": "An unexpected error occurred",
        "details": str(exc),
        "trace_id": _trace_id(request),
    }
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)
