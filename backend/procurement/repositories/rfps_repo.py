from __future__ import annotations

from typing import Any, Iterable

from boto3.dynamodb.conditions import Key

from ..db.dynamodb.table import DynamoTable, Page, get_main_table
from ..domain import clock
from ..domain.models import RFPStatus
from .common import Expr, new_id, strip_storage_keys, to_ddb


def type_pk(t: str) -> str:
    return f"TYPE#{t}"


def owner_rfps_pk(user_id: str) -> str:
    return f"OWNER#{user_id}#RFPS"


def rfp_key(rfp_id: str) -> dict[str, str]:
    return {"pk": f"RFP#{rfp_id}", "sk": "PROFILE"}


def normalize_rfp_for_api(item: dict[str, Any] | None) -> dict[str, Any] | None:
    if not item:
        return None

    obj = strip_storage_keys(item)
    obj["id"] = item.get("rfpId")
    obj.pop("rfpId", None)
    obj["responseCount"] = int(obj.get("responseCount") or 0)
    obj["documentIds"] = list(obj.get("documentIds") or [])
    obj["isExpired"] = clock.is_past(obj.get("deadline"))
    return obj


def build_rfp_item(*, owner_id: str, fields: dict[str, Any], deadline: str) -> dict[str, Any]:
    rfp_id = new_id("rfp")
    created_at = clock.now_iso()
    item: dict[str, Any] = {
        **rfp_key(rfp_id),
        "entityType": "Rfp",
        "rfpId": rfp_id,
        "title": fields.get("title"),
        "description": fields.get("description"),
        "category": fields.get("category"),
        "deadline": deadline,
        "requirements": list(fields.get("requirements") or []),
        "evaluationCriteria": list(fields.get("evaluationCriteria") or []),
        "status": RFPStatus.DRAFT.value,
        "createdBy": owner_id,
        "responseCount": 0,
        "createdAt": created_at,
        "updatedAt": created_at,
        "gsi1pk": type_pk("RFP"),
        "gsi1sk": f"{created_at}#{rfp_id}",
        "gsi2pk": owner_rfps_pk(owner_id),
        "gsi2sk": f"{created_at}#{rfp_id}",
    }
    for k in ("budgetMin", "budgetMax", "termsAndConditions"):
        if fields.get(k) is not None:
            item[k] = fields[k]
    # `documentIds` is a string set; DynamoDB cannot store an empty one, so it
    # only appears once the first document is attached.
    return to_ddb(item)


def create_rfp(item: dict[str, Any]) -> dict[str, Any]:
    get_main_table().put_item(item=item, condition_expression="attribute_not_exists(pk)")
    return normalize_rfp_for_api(item) or {}


def get_rfp_item(rfp_id: str) -> dict[str, Any] | None:
    return get_main_table().get_item(key=rfp_key(rfp_id))


def get_rfp_by_id(rfp_id: str) -> dict[str, Any] | None:
    return normalize_rfp_for_api(get_rfp_item(rfp_id))


def update_rfp_guarded(
    rfp_id: str,
    *,
    owner_id: str,
    expected_statuses: Iterable[RFPStatus],
    sets: dict[str, Any],
    removes: Iterable[str] = (),
) -> dict[str, Any] | None:
    """
    Compare-and-swap update: applies only while the RFP is still owned by
    `owner_id` and in one of `expected_statuses`. Raises DdbConflict otherwise.
    """
    ex = Expr()
    for k, v in sets.items():
        ex.set(k, v)
    ex.set("updatedAt", clock.now_iso())
    for k in removes:
        ex.remove(k)
    ex.exists("pk").eq("createdBy", owner_id).is_in("status", expected_statuses)

    updated = get_main_table().update_item(key=rfp_key(rfp_id), return_values="ALL_NEW", **ex.update_kwargs())
    return normalize_rfp_for_api(updated)


def delete_rfp_guarded(rfp_id: str, *, owner_id: str, expected_statuses: Iterable[RFPStatus]) -> None:
    ex = Expr().exists("pk").eq("createdBy", owner_id).is_in("status", expected_statuses)
    get_main_table().delete_item(key=rfp_key(rfp_id), **ex.condition_kwargs())


def tx_open_for_responses(t: DynamoTable, rfp_id: str, *, now: str, count_submission: bool) -> tuple[str, dict[str, Any]]:
    """
    Transaction item asserting the RFP accepts responses right now
    (published and deadline strictly after `now`).

    When the write being guarded is a Response's first submission the same
    item also bumps `responseCount`; a transaction may touch an item only
    once, so the increment replaces the plain condition check.
    """
    ex = Expr()
    if count_submission:
        ex.add("responseCount", 1)
    ex.exists("pk").eq("status", RFPStatus.PUBLISHED).gt("deadline", now)

    if count_submission:
        return "update", t.tx_update(key=rfp_key(rfp_id), **ex.update_kwargs())
    return "condition_check", t.tx_condition_check(key=rfp_key(rfp_id), **ex.condition_kwargs())


def list_rfps_page(*, owner_id: str | None = None, limit: int = 20, next_token: str | None = None) -> Page:
    """Newest first; all RFPs, or only those created by `owner_id`."""
    t = get_main_table()
    if owner_id:
        pg = t.query_page(
            index_name="GSI2",
            key_condition_expression=Key("gsi2pk").eq(owner_rfps_pk(owner_id)),
            scan_index_forward=False,
            limit=limit,
            next_token=next_token,
        )
    else:
        pg = t.query_page(
            index_name="GSI1",
            key_condition_expression=Key("gsi1pk").eq(type_pk("RFP")),
            scan_index_forward=False,
            limit=limit,
            next_token=next_token,
        )

    data: list[dict[str, Any]] = []
    for it in pg.items:
        norm = normalize_rfp_for_api(it)
        if norm:
            data.append(norm)
    return Page(items=data, next_token=pg.next_token)
