"""
Opaque `nextToken` cursors.

A cursor is DynamoDB's LastEvaluatedKey sealed with AES-GCM, tagged with the
index it was produced on so it cannot be replayed against another listing.
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any

from ...services.token_crypto import decrypt_string, encrypt_string
from .errors import DdbValidation

_TOKEN_VERSION = 1


def _invalid() -> DdbValidation:
    return DdbValidation(message="Invalid nextToken")


def _json_default(v: Any) -> Any:
    if isinstance(v, Decimal):
        return int(v) if v == v.to_integral_value() else float(v)
    raise TypeError(f"Unserializable cursor value: {type(v).__name__}")


def encode_next_token(last_evaluated_key: dict[str, Any] | None, *, scope: str) -> str | None:
    if not last_evaluated_key:
        return None
    payload = {"v": _TOKEN_VERSION, "s": scope, "lek": last_evaluated_key}
    return encrypt_string(json.dumps(payload, separators=(",", ":"), default=_json_default))


def decode_next_token(next_token: str | None, *, scope: str) -> dict[str, Any] | None:
    if not next_token:
        return None

    raw = decrypt_string(next_token)
    if not raw:
        raise _invalid()
    try:
        payload = json.loads(raw)
    except ValueError as e:
        raise _invalid() from e

    if not isinstance(payload, dict) or payload.get("v") != _TOKEN_VERSION or payload.get("s") != scope:
        raise _invalid()
    lek = payload.get("lek")
    if not isinstance(lek, dict) or not lek:
        raise _invalid()
    return lek
