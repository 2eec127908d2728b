"""AES-GCM sealing for opaque tokens handed to clients (pagination cursors)."""

from __future__ import annotations

import base64
import binascii
import hashlib
import os
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..settings import settings

_DEV_FALLBACK_KEY = "procurement-dev-token-key"


def _get_key() -> bytes:
    raw = settings.token_enc_key or settings.jwt_secret or _DEV_FALLBACK_KEY
    return hashlib.sha256(str(raw).encode("utf-8")).digest()  # 32 bytes


def encrypt_string(plain_text: Any) -> str | None:
    if plain_text is None:
        return None

    iv = os.urandom(12)  # 12 bytes for GCM
    sealed = AESGCM(_get_key()).encrypt(iv, str(plain_text).encode("utf-8"), None)

    return ":".join(
        [
            "v1",
            base64.urlsafe_b64encode(iv).decode("ascii"),
            base64.urlsafe_b64encode(sealed).decode("ascii"),
        ]
    )


def decrypt_string(cipher_text: Any) -> str | None:
    if not cipher_text:
        return None

    parts = str(cipher_text).split(":")
    if len(parts) != 3 or parts[0] != "v1":
        return None

    try:
        iv = base64.urlsafe_b64decode(parts[1])
        sealed = base64.urlsafe_b64decode(parts[2])
    except (binascii.Error, ValueError):
        return None
    if len(iv) != 12:
        return None

    try:
        return AESGCM(_get_key()).decrypt(iv, sealed, None).decode("utf-8")
    except (InvalidTag, UnicodeDecodeError):
        return None
