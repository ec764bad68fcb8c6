import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

TRACE_ID_CTX_VAR: ContextVar[str] = ContextVar("trace_id", default="")
TRACE_HEADER = "x-trace-id"

_VALID_TRACE_ID = re.compile(r"^[A-Za-z0-9._-]{8,64}$")


def resolve_trace_id(incoming) -> str:
    """Reuse a well-formed caller-supplied trace id, otherwise mint one."""
    if incoming and _VALID_TRACE_ID.match(incoming):
        return incoming
    return str(uuid.uuid4())


class TracingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add a trace_id to every request and response.
    The trace_id is also stored in a context variable for logging.
    """
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        trace_id = resolve_trace_id(request.headers.get(TRACE_HEADER))
        token = TRACE_ID_CTX_VAR.set(trace_id)
        request.state.trace_id = trace_id
        try:
            response = await call_next(request)
        finally:
            TRACE_ID_CTX_VAR.reset(token)

        # header names are case-insensitive
        response.headers[TRACE_HEADER] = trace_id
        return response
