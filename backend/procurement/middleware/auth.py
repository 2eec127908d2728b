from __future__ import annotations

import re

from fastapi import HTTPException, Request
from starlette.middleware.base import BaseHTTPMiddleware

from ..auth.tokens import TokenError, verify_access_token
from ..db.dynamodb.errors import DdbError
from ..domain.access_control import Actor
from ..domain.models import normalize_role
from ..error_handlers import storage_problem
from ..observability.context import actor_id_var
from ..observability.logging import get_logger
from ..problem_details import problem_response
from ..repositories import users_repo

# Anonymous browsing of RFPs is allowed; a valid token still identifies the caller.
_OPTIONAL_AUTH = re.compile(r"^/api/rfps(/[^/]+)?/?$")


def is_public_path(path: str) -> bool:
    # "GET /" health is public.
    if path == "/":
        return True
    return path in ("/api/auth/register", "/api/auth/login")


def is_optional_auth(method: str, path: str) -> bool:
    return method == "GET" and bool(_OPTIONAL_AUTH.match(path))


def _bearer(request: Request) -> str | None:
    auth = request.headers.get("authorization")
    if not auth:
        return None
    parts = str(auth).split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1].strip() or None


def resolve_actor(token: str) -> Actor:
    user_id = verify_access_token(token)
    user = users_repo.get_user_item(user_id)
    if not user:
        raise TokenError("User not found")
    if not user.get("isActive", True):
        raise TokenError("Account is deactivated")
    if normalize_role(user.get("role")) is None:
        raise TokenError("Account has no valid role", status_code=403)
    return Actor.from_user(users_repo.normalize_user_for_api(user) or {})


async def require_auth(request: Request):
    path = request.url.path
    method = request.method.upper()

    # CORSMiddleware answers preflight itself.
    if method == "OPTIONS":
        return

    # Only API routes carry identity.
    if not path.startswith("/api/"):
        return

    if is_public_path(path):
        return

    token = _bearer(request)
    if is_optional_auth(method, path):
        if token:
            try:
                request.state.user = resolve_actor(token)
            except TokenError:
                # An unusable token on a public read degrades to anonymous.
                pass
        return

    if not token:
        raise HTTPException(status_code=401, detail="No token provided or invalid token format")

    try:
        request.state.user = resolve_actor(token)
    except TokenError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


class AuthMiddleware(BaseHTTPMiddleware):
    """
    Resolves the bearer token into `request.state.user` before routing.

    Added before CORSMiddleware so CORS wraps auth failures too.
    """

    async def dispatch(self, request: Request, call_next):
        try:
            await require_auth(request)
        except HTTPException as exc:
            get_logger("auth_middleware").info(
                "auth_middleware_denied", status_code=exc.status_code, path=request.url.path
            )
            return problem_response(
                request=request,
                status_code=exc.status_code,
                detail=str(exc.detail) if isinstance(exc.detail, str) else None,
                extensions={"kind": "unauthorized" if exc.status_code == 401 else "forbidden"},
            )
        except DdbError as exc:
            # Raised outside routing, so the app's DdbError handler never sees it.
            return storage_problem(request, exc)

        actor = getattr(request.state, "user", None)
        token = actor_id_var.set(actor.id if isinstance(actor, Actor) else None)
        try:
            return await call_next(request)
        finally:
            actor_id_var.reset(token)
