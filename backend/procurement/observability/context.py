from __future__ import annotations

from contextvars import ContextVar

# Bound per request by the middlewares and read by the log processors.
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
actor_id_var: ContextVar[str | None] = ContextVar("actor_id", default=None)


def get_request_id() -> str | None:
    return request_id_var.get()


def get_actor_id() -> str | None:
    return actor_id_var.get()
