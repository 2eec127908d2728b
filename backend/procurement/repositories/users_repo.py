from __future__ import annotations

from typing import Any

from ..db.dynamodb.table import get_main_table
from ..domain import clock
from .common import Expr, new_id, strip_storage_keys, to_ddb

# Never leaves the repository layer through normalize_user_for_api.
_PRIVATE_FIELDS = ("passwordHash",)


def user_key(user_id: str) -> dict[str, str]:
    uid = str(user_id or "").strip()
    if not uid:
        raise ValueError("user_id is required")
    return {"pk": f"USER#{uid}", "sk": "PROFILE"}


def username_claim_key(username: str) -> dict[str, str]:
    return {"pk": f"USERNAME#{str(username or '').strip().lower()}", "sk": "CLAIM"}


def email_claim_key(email: str) -> dict[str, str]:
    return {"pk": f"USEREMAIL#{str(email or '').strip().lower()}", "sk": "CLAIM"}


def normalize_user_for_api(item: dict[str, Any] | None) -> dict[str, Any] | None:
    if not item:
        return None
    out = strip_storage_keys(item)
    out["id"] = item.get("userId")
    out.pop("userId", None)
    for k in _PRIVATE_FIELDS:
        out.pop(k, None)
    return out


def build_user_item(
    *,
    username: str,
    email: str,
    password_hash: str,
    role: str,
    full_name: str,
    organization_name: str | None = None,
    phone: str | None = None,
) -> dict[str, Any]:
    user_id = new_id("usr")
    now = clock.now_iso()
    item: dict[str, Any] = {
        **user_key(user_id),
        "entityType": "User",
        "userId": user_id,
        "username": username,
        "email": email.strip().lower(),
        "passwordHash": password_hash,
        "role": role,
        "fullName": full_name,
        "isActive": True,
        "createdAt": now,
        "updatedAt": now,
    }
    if organization_name:
        item["organizationName"] = organization_name
    if phone:
        item["phone"] = phone
    return to_ddb(item)


def create_user(item: dict[str, Any]) -> dict[str, Any]:
    """Profile plus username/email claims, all-or-nothing."""
    t = get_main_table()
    uid = item["userId"]
    claims = [
        {**username_claim_key(item["username"]), "entityType": "UsernameClaim", "userId": uid},
        {**email_claim_key(item["email"]), "entityType": "EmailClaim", "userId": uid},
    ]
    t.transact_write(
        puts=[t.tx_put(item=it, condition_expression="attribute_not_exists(pk)") for it in (item, *claims)]
    )
    return normalize_user_for_api(item) or {}


def username_taken(username: str) -> bool:
    return get_main_table().get_item(key=username_claim_key(username)) is not None


def email_taken(email: str) -> bool:
    return get_main_table().get_item(key=email_claim_key(email)) is not None


def get_user_item(user_id: str) -> dict[str, Any] | None:
    return get_main_table().get_item(key=user_key(user_id))


def get_user_by_id(user_id: str) -> dict[str, Any] | None:
    return normalize_user_for_api(get_user_item(user_id))


def get_user_item_by_login(login: str) -> dict[str, Any] | None:
    """Resolve a username or an email address to the stored user item."""
    t = get_main_table()
    key = email_claim_key(login) if "@" in str(login or "") else username_claim_key(login)
    claim = t.get_item(key=key)
    uid = (claim or {}).get("userId")
    if not uid:
        return None
    return t.get_item(key=user_key(str(uid)))


def update_user(user_id: str, *, sets: dict[str, Any], removes: tuple[str, ...] = ()) -> dict[str, Any] | None:
    ex = Expr()
    for k, v in sets.items():
        ex.set(k, v)
    ex.set("updatedAt", clock.now_iso())
    for k in removes:
        ex.remove(k)
    ex.exists("pk")
    updated = get_main_table().update_item(key=user_key(user_id), return_values="ALL_NEW", **ex.update_kwargs())
    return normalize_user_for_api(updated)
