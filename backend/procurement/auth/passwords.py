"""
Password hashing (bcrypt).

bcrypt only reads the first 72 bytes of its input, so the password is
pre-hashed with SHA-256 and base64-encoded (44 bytes, no NUL) before it is
handed to bcrypt. The cost factor travels inside the stored hash.
"""

from __future__ import annotations

import base64
import hashlib
import re

import bcrypt

from ..errors import ValidationError

_ROUNDS = 12

_LOWER = re.compile(r"[a-z]")
_UPPER = re.compile(r"[A-Z]")
_DIGIT = re.compile(r"\d")


def _prehash(password: str) -> bytes:
    return base64.b64encode(hashlib.sha256(str(password).encode("utf-8")).digest())


def check_strength(password: str) -> None:
    pw = str(password or "")
    if len(pw) < 6:
        raise ValidationError(message="Password must be at least 6 characters long")
    if not (_LOWER.search(pw) and _UPPER.search(pw) and _DIGIT.search(pw)):
        raise ValidationError(
            message="Password must contain at least one lowercase letter, one uppercase letter, and one number"
        )


def hash_password(password: str, *, rounds: int | None = None) -> str:
    salt = bcrypt.gensalt(rounds=rounds or _ROUNDS)
    return bcrypt.hashpw(_prehash(password), salt).decode("ascii")


def verify_password(password: str, stored: str | None) -> bool:
    if not stored:
        return False
    try:
        return bcrypt.checkpw(_prehash(password), str(stored).encode("utf-8"))
    except ValueError:
        # Not a bcrypt hash.
        return False
