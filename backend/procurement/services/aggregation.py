"""
Response counter on RFPs.

`responseCount` is append-only: it grows by one the first time a Response
enters `submitted` and is never decremented (deleting or rejecting a Response
leaves it untouched). "First time" is tracked by `submittedAt`: the
increment travels in the same transaction as the Response write, and that
write is conditioned on `submittedAt` not existing yet.
"""

from __future__ import annotations

from typing import Any

from ..domain.models import ResponseStatus
from ..repositories.common import Expr


def counts_as_submission(previous: dict[str, Any] | None, new_status: Any) -> bool:
    if new_status != ResponseStatus.SUBMITTED:
        return False
    return not (previous or {}).get("submittedAt")


def stamp_first_submission(ex: Expr, *, now: str) -> Expr:
    """Stamp `submittedAt` and make the write fail if it was already stamped."""
    return ex.set("submittedAt", now).not_exists("submittedAt")
