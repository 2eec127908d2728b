from __future__ import annotations

import time
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from ..settings import settings

_ALGORITHM = "HS256"
_ISSUER = "procurement-backend"
_DEV_FALLBACK_SECRET = "procurement-dev-jwt-secret"


class TokenError(Exception):
    def __init__(self, message: str, *, status_code: int = 401):
        super().__init__(message)
        self.status_code = status_code


def _secret() -> str:
    # Production refuses to start without JWT_SECRET (Settings.require_in_production).
    return settings.jwt_secret or _DEV_FALLBACK_SECRET


def issue_access_token(user_id: str, *, role: str | None = None) -> str:
    now = int(time.time())
    claims: dict[str, Any] = {
        "sub": str(user_id),
        "iss": _ISSUER,
        "iat": now,
        "exp": now + int(settings.jwt_expires_minutes) * 60,
    }
    if role:
        claims["role"] = role
    return jwt.encode(claims, _secret(), algorithm=_ALGORITHM)


def verify_access_token(token: str) -> str:
    """Returns the user id (``sub``) of a valid token."""
    if not token:
        raise TokenError("Missing token")
    try:
        claims = jwt.decode(token, _secret(), algorithms=[_ALGORITHM], issuer=_ISSUER)
    except ExpiredSignatureError:
        raise TokenError("Token expired") from None
    except JWTError:
        raise TokenError("Invalid token") from None

    sub = str(claims.get("sub") or "").strip()
    if not sub:
        raise TokenError("Invalid token")
    return sub
