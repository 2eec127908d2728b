from __future__ import annotations

from typing import Any

from ..db.dynamodb.errors import DdbConflict
from ..domain import clock, validation
from ..domain.access_control import Actor, can_view_rfp, ensure_owner, is_listed_for, require_role
from ..domain.models import Role, RFPStatus
from ..domain.state_machine import (
    RFP_DELETABLE,
    RFP_EDITABLE,
    RFPAction,
    next_rfp_status,
    parse_rfp_status,
    rfp_sources,
    rfp_status_via_update,
)
from ..errors import Forbidden, InvalidStateTransition, NotFound, ProcurementError, ValidationError
from ..observability.logging import get_logger
from ..repositories import responses_repo, rfps_repo

log = get_logger("rfp_lifecycle")

_REQUIRED_FIELDS = ("title", "description", "category", "deadline")
_OPTIONAL_FIELDS = ("budgetMin", "budgetMax", "termsAndConditions")
_LIST_FIELDS = ("requirements", "evaluationCriteria")


def _not_found(rfp_id: str) -> NotFound:
    return NotFound(message="RFP not found", entity="rfp", entity_id=rfp_id)


def _load(rfp_id: str) -> dict[str, Any]:
    rfp = rfps_repo.get_rfp_by_id(rfp_id)
    if not rfp:
        raise _not_found(rfp_id)
    return rfp


def _load_owned(rfp_id: str, actor: Actor) -> dict[str, Any]:
    require_role(actor, Role.REQUESTER, action="manage RFPs")
    rfp = _load(rfp_id)
    ensure_owner(rfp, actor, entity_name="rfp")
    return rfp


def _diagnose(rfp_id: str, actor: Actor, *, allowed: frozenset[RFPStatus], verb: str) -> ProcurementError:
    """A guarded write failed: re-read and name the precondition that no longer holds."""
    rfp = rfps_repo.get_rfp_by_id(rfp_id)
    if not rfp:
        return _not_found(rfp_id)
    if rfp.get("createdBy") != actor.id:
        return Forbidden(message="Not authorized to modify this rfp", entity="rfp", entity_id=rfp_id)
    status = rfp.get("status")
    if status not in allowed:
        return InvalidStateTransition(
            message=f"Cannot {verb} an RFP that is {status}",
            entity="rfp",
            entity_id=rfp_id,
            details={"status": status},
        )
    return InvalidStateTransition(
        message="RFP changed concurrently; retry", entity="rfp", entity_id=rfp_id, details={"status": status}
    )


def create_rfp(actor: Actor, payload: dict[str, Any]) -> dict[str, Any]:
    require_role(actor, Role.REQUESTER, action="create RFPs")
    for k in _REQUIRED_FIELDS:
        if payload.get(k) in (None, ""):
            raise ValidationError(message=f"{k} is required")

    deadline = validation.future_deadline(payload["deadline"])
    validation.budget_range(payload.get("budgetMin"), payload.get("budgetMax"))

    item = rfps_repo.build_rfp_item(owner_id=actor.id, fields=payload, deadline=deadline)
    rfp = rfps_repo.create_rfp(item)
    log.info("rfp_created", rfp_id=rfp.get("id"), user_id=actor.id)
    return rfp


def get_rfp(rfp_id: str, actor: Actor | None) -> dict[str, Any]:
    rfp = _load(rfp_id)
    if not can_view_rfp(rfp, actor):
        raise Forbidden(message="This RFP is not yet published", entity="rfp", entity_id=rfp_id)
    return rfp


def list_rfps(
    actor: Actor | None,
    *,
    status: str | None = None,
    category: str | None = None,
    search: str | None = None,
    mine: bool = False,
    limit: int = 20,
    next_token: str | None = None,
) -> dict[str, Any]:
    """
    Newest first. Each page is filtered after the query, so a page can hold
    fewer than `limit` items while `nextToken` is still set.
    """
    want_status = parse_rfp_status(status) if status else None
    cat = (category or "").strip().lower()
    needle = (search or "").strip().lower()
    lim = max(1, min(100, int(limit or 20)))

    owner_id: str | None = None
    if mine:
        if actor is None:
            raise Forbidden(message="Sign in to list your own RFPs", entity="rfp")
        owner_id = actor.id

    page = rfps_repo.list_rfps_page(owner_id=owner_id, limit=lim, next_token=next_token)

    data: list[dict[str, Any]] = []
    for rfp in page.items:
        if not is_listed_for(rfp, actor):
            continue
        if want_status and rfp.get("status") != want_status:
            continue
        if cat and cat not in str(rfp.get("category") or "").lower():
            continue
        if needle:
            hay = f"{rfp.get('title') or ''}\n{rfp.get('description') or ''}".lower()
            if needle not in hay:
                continue
        data.append(rfp)

    return {"data": data, "nextToken": page.next_token, "pagination": {"limit": lim}}


def update_rfp(rfp_id: str, actor: Actor, changes: dict[str, Any]) -> dict[str, Any]:
    rfp = _load_owned(rfp_id, actor)
    current = parse_rfp_status(rfp.get("status"))
    if current not in RFP_EDITABLE:
        raise InvalidStateTransition(
            message=f"Cannot update an RFP that is {current.value}",
            entity="rfp",
            entity_id=rfp_id,
            details={"status": current.value},
        )

    sets: dict[str, Any] = {}
    removes: list[str] = []

    for k in ("title", "description", "category"):
        if k in changes:
            if changes[k] in (None, ""):
                raise ValidationError(message=f"{k} cannot be empty")
            sets[k] = changes[k]
    for k in _LIST_FIELDS:
        if k in changes:
            sets[k] = list(changes[k] or [])
    for k in _OPTIONAL_FIELDS:
        if k in changes:
            if changes[k] is None:
                removes.append(k)
            else:
                sets[k] = changes[k]

    if "deadline" in changes:
        if changes["deadline"] in (None, ""):
            raise ValidationError(message="deadline cannot be empty")
        sets["deadline"] = validation.future_deadline(changes["deadline"])

    validation.budget_range(
        changes["budgetMin"] if "budgetMin" in changes else rfp.get("budgetMin"),
        changes["budgetMax"] if "budgetMax" in changes else rfp.get("budgetMax"),
    )

    expected: frozenset[RFPStatus] = RFP_EDITABLE
    new_status = current
    if changes.get("status") is not None:
        new_status = rfp_status_via_update(current, changes["status"])
    if new_status != current:
        expected = frozenset({current})
        now = clock.now_iso()
        sets["status"] = new_status.value
        # publishedAt is present exactly while the RFP is published.
        if new_status == RFPStatus.PUBLISHED:
            sets["publishedAt"] = now
        else:
            removes.append("publishedAt")
        if new_status == RFPStatus.CLOSED:
            sets["closedAt"] = now

    try:
        updated = rfps_repo.update_rfp_guarded(
            rfp_id, owner_id=actor.id, expected_statuses=expected, sets=sets, removes=removes
        )
    except DdbConflict:
        raise _diagnose(rfp_id, actor, allowed=expected, verb="update") from None

    log.info(
        "rfp_updated",
        rfp_id=rfp_id,
        user_id=actor.id,
        fields=sorted(set(sets) | set(removes)),
        status=new_status.value,
    )
    return updated or {}


def _transition(rfp_id: str, actor: Actor, action: RFPAction) -> dict[str, Any]:
    rfp = _load_owned(rfp_id, actor)
    nxt = next_rfp_status(rfp.get("status"), action)
    now = clock.now_iso()

    sets: dict[str, Any] = {"status": nxt.value}
    removes: list[str] = []
    if nxt == RFPStatus.PUBLISHED:
        sets["publishedAt"] = now
    elif nxt == RFPStatus.CLOSED:
        sets["closedAt"] = now
        removes.append("publishedAt")

    sources = rfp_sources(action)
    try:
        updated = rfps_repo.update_rfp_guarded(
            rfp_id, owner_id=actor.id, expected_statuses=sources, sets=sets, removes=removes
        )
    except DdbConflict:
        raise _diagnose(rfp_id, actor, allowed=sources, verb=action.value) from None

    log.info(f"rfp_{nxt.value}", rfp_id=rfp_id, user_id=actor.id)
    return updated or {}


def publish_rfp(rfp_id: str, actor: Actor) -> dict[str, Any]:
    return _transition(rfp_id, actor, RFPAction.PUBLISH)


def close_rfp(rfp_id: str, actor: Actor) -> dict[str, Any]:
    return _transition(rfp_id, actor, RFPAction.CLOSE)


def delete_rfp(rfp_id: str, actor: Actor) -> None:
    rfp = _load_owned(rfp_id, actor)
    status = rfp.get("status")
    if status not in RFP_DELETABLE:
        raise InvalidStateTransition(
            message="Only draft RFPs can be deleted",
            entity="rfp",
            entity_id=rfp_id,
            details={"status": status},
        )
    try:
        rfps_repo.delete_rfp_guarded(rfp_id, owner_id=actor.id, expected_statuses=RFP_DELETABLE)
    except DdbConflict:
        raise _diagnose(rfp_id, actor, allowed=RFP_DELETABLE, verb="delete") from None
    log.info("rfp_deleted", rfp_id=rfp_id, user_id=actor.id)


def list_rfp_responses(rfp_id: str, actor: Actor) -> list[dict[str, Any]]:
    rfp = _load_owned(rfp_id, actor)
    return responses_repo.list_responses_for_rfp(str(rfp["id"]))
