"""Authentication dependencies for FastAPI routes."""

from typing import Callable

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from urgentcare.auth import jwt
from urgentcare.auth.schemas import Principal, Role
from urgentcare.services.errors import NotAuthenticated, NotAuthorized

_bearer_scheme = HTTPBearer(auto_error=False)


def get_current_principal(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
) -> Principal:
    """Resolve the caller from the Authorization bearer token.

    Rejected before any database read when the token is missing or invalid.
    """
    if not credentials or credentials.scheme.lower() != "bearer":
        raise NotAuthenticated("Missing bearer token")

    principal = jwt.principal_from_token(credentials.credentials)
    if principal is None:
        raise NotAuthenticated("Invalid or expired token")

    # per-user rate limit key
    request.state.user_id = principal.id
    return principal


def require_role(*roles: Role) -> Callable[..., Principal]:
    allowed = frozenset(roles)

    def _dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            raise NotAuthorized(
                "This action requires one of the roles: " + ", ".join(sorted(r.value for r in allowed))
            )
        return principal

    return _dependency


require_patient = require_role(Role.PATIENT)
require_provider = require_role(Role.PROVIDER)
require_admin = require_role(Role.ADMIN)
require_provider_or_admin = require_role(Role.PROVIDER, Role.ADMIN)
