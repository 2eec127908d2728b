from __future__ import annotations

import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from ..observability.logging import get_logger


class AccessLogMiddleware(BaseHTTPMiddleware):
    """One `request` event per handled call; server errors are logged at error level."""

    def __init__(self, app, *, exclude_paths: set[str] | None = None):
        super().__init__(app)
        self._exclude = frozenset(exclude_paths or ())
        self._log = get_logger("access")

    def _fields(self, request: Request, started: float) -> dict[str, object]:
        actor = getattr(request.state, "user", None)
        client = request.client
        return {
            "http_method": request.method.upper(),
            "path": request.url.path,
            "duration_ms": round((time.perf_counter() - started) * 1000.0, 2),
            "client_ip": client.host if client else None,
            "user_id": getattr(actor, "id", None),
        }

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self._exclude:
            return await call_next(request)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            self._log.exception("request_failed", **self._fields(request, started))
            raise

        status = int(response.status_code)
        emit = self._log.error if status >= 500 else self._log.info
        emit("request", status_code=status, **self._fields(request, started))
        return response
