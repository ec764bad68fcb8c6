"""
Typed error taxonomy and the Result wrapper returned by service operations.

Services never raise for expected business outcomes (a lost claim race, a
transition from the wrong status, a missing request). They return
``Result.failure(SomeError(...))`` and the HTTP layer calls ``unwrap()``,
which raises the error so the app-level handler can render it.

Envelope rendered for every error:
    {"code": "REQUEST_ALREADY_CLAIMED", "message": "...", "details": [...], "trace_id": "..."}
"""
import functools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, List, Optional, TypeVar

from sqlalchemy.exc import InterfaceError, OperationalError

logger = logging.getLogger("urgentcare")

T = TypeVar("T")


class CareError(Exception):
    code = "INTERNAL_ERROR"
    http_status = 500
    message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, detail: Any = None):
        if message:
            self.message = message
        if detail is None:
            self.detail: List[str] = []
        elif isinstance(detail, str):
            self.detail = [detail]
        else:
            self.detail = list(detail)
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"code": self.code, "message": self.message}
        if self.detail:
            body["details"] = self.detail
        return body


class NotAuthenticated(CareError):
    code = "NOT_AUTHENTICATED"
    http_status = 401
    message = "Sign in to continue"


class NotAuthorized(CareError):
    code = "NOT_AUTHORIZED"
    http_status = 403
    message = "You are not allowed to act on this request"


class RequestNotFound(CareError):
    code = "REQUEST_NOT_FOUND"
    http_status = 404
    message = "Care request not found"


class PreconditionFailed(CareError):
    code = "PRECONDITION_FAILED"
    http_status = 409
    message = "The request's current status does not allow this action"


class RequestAlreadyClaimed(PreconditionFailed):
    code = "REQUEST_ALREADY_CLAIMED"
    message = "This request was just accepted by another provider"


class ValidationFailed(CareError):
    code = "VALIDATION_FAILED"
    http_status = 422
    message = "Input validation failed"


class StoreUnavailable(CareError):
    code = "STORE_UNAVAILABLE"
    http_status = 503
    message = "The care request store is temporarily unavailable"


@dataclass
class Result(Generic[T]):
    value: Optional[T] = None
    error: Optional[CareError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: CareError) -> "Result[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value


def as_result(func: Callable[..., T]) -> Callable[..., "Result[T]"]:
    """Wrap a service method so expected failures come back as ``Result``.

    The wrapped method raises CareError subclasses internally. Connection
    level database errors roll back the caller's session and surface as
    StoreUnavailable. Anything else propagates.
    """

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return Result.success(func(self, *args, **kwargs))
        except CareError as err:
            return Result.failure(err)
        except (OperationalError, InterfaceError) as err:
            db = getattr(self, "db", None)
            if db is not None:
                db.rollback()
            logger.warning({
                "function": func.__qualname__,
                "status": "store_unavailable",
                "error": str(err.orig if getattr(err, "orig", None) is not None else err),
            })
            return Result.failure(StoreUnavailable())

    return wrapper
