"""
Wall-clock helpers.

Timestamps are persisted as fixed-width UTC strings so that DynamoDB string
comparison (`deadline > :now`) orders them chronologically.
"""

from __future__ import annotations

from datetime import datetime, timezone

_ISO_FMT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(_ISO_FMT)


def now_iso() -> str:
    return to_iso(utcnow())


def parse_iso(value: str) -> datetime:
    raw = str(value or "").strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    dt = datetime.fromisoformat(raw)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def is_past(value: str | None) -> bool:
    """True once the instant is not strictly in the future."""
    if not value:
        return False
    return parse_iso(value) <= utcnow()
