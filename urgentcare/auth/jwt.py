# urgentcare/auth/jwt.py
"""Bearer tokens issued by the identity provider.

Only verification is needed in production; ``create_access_token`` exists for
local tooling and tests that need to mint a token for a given principal.
"""
import os
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from jose import jwt, JWTError  # <-- python-jose

from urgentcare.auth.schemas import Principal, Role

# Config
SECRET_KEY = os.getenv("JWT_SECRET", "dev-secret-change-me")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
ROLE_CLAIM = os.getenv("JWT_ROLE_CLAIM", "role")


def create_access_token(principal_id: str, role: Role, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {"sub": str(principal_id), ROLE_CLAIM: Role(role).value, "exp": expire}
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


def principal_from_token(token: Optional[str]) -> Optional[Principal]:
    """Return the principal carried by a valid token, or None."""
    if not token:
        return None
    payload = decode_token(token)
    if not payload:
        return None
    sub = payload.get("sub")
    role = payload.get(ROLE_CLAIM)
    if not sub or role not in {r.value for r in Role}:
        return None
    return Principal(id=str(sub), role=Role(role))
