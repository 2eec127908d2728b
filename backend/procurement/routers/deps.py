from __future__ import annotations

from fastapi import Request

from ..domain.access_control import Actor
from ..errors import Unauthorized


def optional_actor(request: Request) -> Actor | None:
    actor = getattr(request.state, "user", None)
    return actor if isinstance(actor, Actor) else None


def current_actor(request: Request) -> Actor:
    actor = optional_actor(request)
    if actor is None:
        raise Unauthorized(message="Authentication required")
    return actor
