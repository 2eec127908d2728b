from __future__ import annotations

from typing import Any, Iterable

from boto3.dynamodb.conditions import Key

from ..db.dynamodb.table import DynamoTable, get_main_table
from ..domain import clock
from ..domain.models import ResponseStatus
from . import rfps_repo
from .common import Expr, new_id, strip_storage_keys, to_ddb

_OPTIONAL_FIELDS = ("proposedBudget", "timeline", "methodology", "teamDetails", "additionalNotes")


def response_key(response_id: str) -> dict[str, str]:
    return {"pk": f"RESPONSE#{response_id}", "sk": "PROFILE"}


def responder_claim_key(rfp_id: str, user_id: str) -> dict[str, str]:
    return {"pk": f"RFP#{rfp_id}", "sk": f"RESPONDER#{user_id}"}


def rfp_responses_pk(rfp_id: str) -> str:
    return f"RFP#{rfp_id}#RESPONSES"


def owner_responses_pk(user_id: str) -> str:
    return f"OWNER#{user_id}#RESPONSES"


def normalize_response_for_api(item: dict[str, Any] | None) -> dict[str, Any] | None:
    if not item:
        return None
    obj = strip_storage_keys(item)
    obj["id"] = item.get("responseId")
    obj.pop("responseId", None)
    obj["documentIds"] = list(obj.get("documentIds") or [])
    return obj


def build_response_item(
    *,
    rfp_id: str,
    owner_id: str,
    fields: dict[str, Any],
    status: ResponseStatus,
) -> dict[str, Any]:
    response_id = new_id("resp")
    created_at = clock.now_iso()
    item: dict[str, Any] = {
        **response_key(response_id),
        "entityType": "Response",
        "responseId": response_id,
        "rfpId": rfp_id,
        "submittedBy": owner_id,
        "proposal": fields.get("proposal"),
        "status": status.value,
        "createdAt": created_at,
        "updatedAt": created_at,
        "gsi1pk": rfp_responses_pk(rfp_id),
        "gsi1sk": f"{created_at}#{response_id}",
        "gsi2pk": owner_responses_pk(owner_id),
        "gsi2sk": f"{created_at}#{response_id}",
    }
    for k in _OPTIONAL_FIELDS:
        if fields.get(k) is not None:
            item[k] = fields[k]
    if status == ResponseStatus.SUBMITTED:
        item["submittedAt"] = created_at
    return to_ddb(item)


def _transact(
    t: DynamoTable,
    guard: tuple[str, dict[str, Any]] | None,
    *,
    puts: list[dict[str, Any]] | None = None,
    deletes: list[dict[str, Any]] | None = None,
    updates: list[dict[str, Any]] | None = None,
) -> None:
    updates = list(updates or [])
    checks: list[dict[str, Any]] = []
    if guard is not None:
        kind, entry = guard
        (updates if kind == "update" else checks).append(entry)
    t.transact_write(puts=puts or [], deletes=deletes or [], updates=updates, condition_checks=checks)


def create_response(item: dict[str, Any], *, now: str, count_submission: bool) -> dict[str, Any]:
    """
    One transaction: the response, the (rfp, responder) claim and the
    "RFP is open" guard (which also counts the submission when the response is
    created already submitted).
    """
    t = get_main_table()
    rfp_id = str(item["rfpId"])
    owner_id = str(item["submittedBy"])

    claim = {
        **responder_claim_key(rfp_id, owner_id),
        "entityType": "ResponderClaim",
        "responseId": item["responseId"],
        "createdAt": item["createdAt"],
    }
    _transact(
        t,
        rfps_repo.tx_open_for_responses(t, rfp_id, now=now, count_submission=count_submission),
        puts=[
            t.tx_put(item=item, condition_expression="attribute_not_exists(pk)"),
            t.tx_put(item=claim, condition_expression="attribute_not_exists(pk)"),
        ],
    )
    return normalize_response_for_api(item) or {}


def claim_exists(rfp_id: str, user_id: str) -> bool:
    return get_main_table().get_item(key=responder_claim_key(rfp_id, user_id)) is not None


def get_response_item(response_id: str) -> dict[str, Any] | None:
    return get_main_table().get_item(key=response_key(response_id))


def get_response_by_id(response_id: str) -> dict[str, Any] | None:
    return normalize_response_for_api(get_response_item(response_id))


def update_response_guarded(
    response_id: str,
    *,
    rfp_id: str,
    owner_id: str,
    expected_statuses: Iterable[ResponseStatus],
    ex: Expr,
    now: str,
    count_submission: bool,
) -> dict[str, Any] | None:
    """
    Owner-side write (edit / submit). `ex` carries the field changes; the
    ownership and status guard is appended here and paired with the
    open-RFP guard in one transaction.
    """
    t = get_main_table()
    ex.set("updatedAt", now)
    ex.exists("pk").eq("submittedBy", owner_id).is_in("status", expected_statuses)

    _transact(
        t,
        rfps_repo.tx_open_for_responses(t, rfp_id, now=now, count_submission=count_submission),
        updates=[t.tx_update(key=response_key(response_id), **ex.update_kwargs())],
    )
    return get_response_by_id(response_id)


def review_response_guarded(
    response_id: str,
    *,
    expected_statuses: Iterable[ResponseStatus],
    ex: Expr,
) -> dict[str, Any] | None:
    ex.set("updatedAt", clock.now_iso())
    ex.exists("pk").is_in("status", expected_statuses)
    updated = get_main_table().update_item(
        key=response_key(response_id), return_values="ALL_NEW", **ex.update_kwargs()
    )
    return normalize_response_for_api(updated)


def delete_response_guarded(response_id: str, *, rfp_id: str, owner_id: str, expected_statuses: Iterable[ResponseStatus]) -> None:
    """Deletes the response together with its claim, freeing the (rfp, responder) pair."""
    t = get_main_table()
    ex = Expr().exists("pk").eq("submittedBy", owner_id).is_in("status", expected_statuses)
    t.transact_write(
        deletes=[
            t.tx_delete(key=response_key(response_id), **ex.condition_kwargs()),
            t.tx_delete(key=responder_claim_key(rfp_id, owner_id)),
        ]
    )


def _collect(pk_attr: str, pk_value: str, index_name: str) -> list[dict[str, Any]]:
    t = get_main_table()
    items: list[dict[str, Any]] = []
    tok: str | None = None
    while True:
        pg = t.query_page(
            index_name=index_name,
            key_condition_expression=Key(pk_attr).eq(pk_value),
            scan_index_forward=False,
            limit=200,
            next_token=tok,
        )
        items.extend(pg.items)
        tok = pg.next_token
        if not tok or not pg.items:
            break

    out: list[dict[str, Any]] = []
    for it in items:
        norm = normalize_response_for_api(it)
        if norm:
            out.append(norm)
    return out


def list_responses_for_rfp(rfp_id: str) -> list[dict[str, Any]]:
    return _collect("gsi1pk", rfp_responses_pk(rfp_id), "GSI1")


def list_responses_by_owner(user_id: str) -> list[dict[str, Any]]:
    return _collect("gsi2pk", owner_responses_pk(user_id), "GSI2")
