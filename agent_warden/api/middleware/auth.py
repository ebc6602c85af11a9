"""JWT bearer authentication and role checks for the operator API."""

from __future__ import annotations

from datetime import timedelta

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from agent_warden.clock import utc_now
from agent_warden.config import settings

OPERATOR_ROLE = "operator"

_bearer_scheme = HTTPBearer(auto_error=False)


class TokenClaims(BaseModel):
    """Claims extracted from a validated JWT token."""

    sub: str
    role: str = "viewer"


def create_token(sub: str, role: str = "viewer", expires_minutes: int | None = None) -> str:
    """Create a JWT token (used for testing and initial setup)."""
    payload: dict[str, object] = {"sub": sub, "role": role}
    if expires_minutes is not None:
        payload["exp"] = utc_now() + timedelta(minutes=expires_minutes)
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> TokenClaims:
    """Decode and validate a JWT token."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
        return TokenClaims(sub=payload["sub"], role=payload.get("role", "viewer"))
    except jwt.ExpiredSignatureError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
        ) from e
    except (jwt.InvalidTokenError, KeyError, ValueError) as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        ) from e


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> TokenClaims:
    """FastAPI dependency that validates the Bearer token and returns claims."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return decode_token(credentials.credentials)


async def require_operator(user: TokenClaims = Depends(get_current_user)) -> TokenClaims:
    """Only operators may change policy state."""
    if user.role != OPERATOR_ROLE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Operator role required",
        )
    return user
