from __future__ import annotations

import re
from typing import Any

from ..auth import passwords
from ..auth.tokens import issue_access_token
from ..db.dynamodb.errors import DdbConflict
from ..errors import Conflict, NotFound, Unauthorized, ValidationError
from ..domain.models import normalize_role
from ..observability.logging import get_logger
from ..repositories import users_repo

log = get_logger("accounts")

_USERNAME = re.compile(r"^[A-Za-z0-9_]{3,30}$")
_PROFILE_FIELDS = ("fullName", "organizationName", "phone")


def _session(user: dict[str, Any]) -> dict[str, Any]:
    return {
        "access_token": issue_access_token(str(user["id"]), role=user.get("role")),
        "token_type": "Bearer",
        "user": user,
    }


def register(
    *,
    username: str,
    email: str,
    password: str,
    role: str,
    full_name: str,
    organization_name: str | None = None,
    phone: str | None = None,
) -> dict[str, Any]:
    username = str(username or "").strip()
    if not _USERNAME.match(username):
        raise ValidationError(message="Username must be 3-30 characters: letters, numbers and underscores only")
    canonical_role = normalize_role(role)
    if canonical_role is None:
        raise ValidationError(message="Role must be requester or responder", details={"role": role})
    passwords.check_strength(password)

    if users_repo.username_taken(username):
        raise Conflict(message="Username is already taken", entity="user")
    if users_repo.email_taken(email):
        raise Conflict(message="Email is already registered", entity="user")

    item = users_repo.build_user_item(
        username=username,
        email=email,
        password_hash=passwords.hash_password(password),
        role=canonical_role.value,
        full_name=str(full_name or "").strip(),
        organization_name=organization_name,
        phone=phone,
    )
    try:
        user = users_repo.create_user(item)
    except DdbConflict:
        # Lost a race on one of the claims.
        msg = "Username is already taken" if users_repo.username_taken(username) else "Email is already registered"
        raise Conflict(message=msg, entity="user") from None

    log.info("user_registered", user_id=user.get("id"), role=canonical_role.value)
    return _session(user)


def login(*, username: str, password: str) -> dict[str, Any]:
    item = users_repo.get_user_item_by_login(username)
    if not item or not passwords.verify_password(password, item.get("passwordHash")):
        raise Unauthorized(message="Username or password is incorrect", entity="user")
    if not item.get("isActive", True):
        raise Unauthorized(message="Your account has been deactivated", entity="user")

    user = users_repo.normalize_user_for_api(item) or {}
    log.info("user_logged_in", user_id=user.get("id"))
    return _session(user)


def get_me(user_id: str) -> dict[str, Any]:
    user = users_repo.get_user_by_id(user_id)
    if not user:
        raise NotFound(message="User not found", entity="user", entity_id=user_id)
    return user


def update_profile(user_id: str, changes: dict[str, Any]) -> dict[str, Any]:
    """Only display fields change here; username, email and role are fixed at registration."""
    sets: dict[str, Any] = {}
    removes: list[str] = []
    for k in _PROFILE_FIELDS:
        if k not in changes:
            continue
        v = changes[k]
        v = str(v).strip() if v is not None else ""
        if v:
            sets[k] = v
        elif k == "fullName":
            raise ValidationError(message="fullName cannot be empty")
        else:
            removes.append(k)

    if not sets and not removes:
        return get_me(user_id)

    try:
        user = users_repo.update_user(user_id, sets=sets, removes=tuple(removes))
    except DdbConflict:
        raise NotFound(message="User not found", entity="user", entity_id=user_id) from None
    log.info("user_profile_updated", user_id=user_id, fields=sorted([*sets, *removes]))
    return user or {}


def change_password(user_id: str, *, current_password: str, new_password: str) -> None:
    item = users_repo.get_user_item(user_id)
    if not item:
        raise NotFound(message="User not found", entity="user", entity_id=user_id)
    if not passwords.verify_password(current_password, item.get("passwordHash")):
        raise ValidationError(message="Current password is incorrect")
    passwords.check_strength(new_password)

    users_repo.update_user(user_id, sets={"passwordHash": passwords.hash_password(new_password)})
    log.info("user_password_changed", user_id=user_id)
