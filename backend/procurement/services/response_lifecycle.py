from __future__ import annotations

from typing import Any

from ..db.dynamodb.errors import DdbConflict
from ..domain import clock
from ..domain.access_control import (
    Actor,
    can_review,
    can_view_response,
    ensure_owner,
    require_role,
)
from ..domain.models import ResponseStatus, Role, RFPStatus
from ..domain.state_machine import (
    RESPONSE_DELETABLE,
    RESPONSE_EDITABLE,
    ResponseAction,
    is_reviewed,
    next_response_status,
    parse_response_status,
    response_sources,
    response_status_via_update,
    review_action_for,
)
from ..errors import (
    Conflict,
    ExpiredDeadline,
    Forbidden,
    InvalidStateTransition,
    NotFound,
    ProcurementError,
    ValidationError,
)
from ..observability.logging import get_logger
from ..repositories import responses_repo, rfps_repo
from ..repositories.common import Expr
from . import aggregation

log = get_logger("response_lifecycle")

_EDITABLE_FIELDS = ("proposal", "proposedBudget", "timeline", "methodology", "teamDetails", "additionalNotes")
_INITIAL_STATUSES = frozenset({ResponseStatus.DRAFT, ResponseStatus.SUBMITTED})


def _rfp_not_found(rfp_id: str) -> NotFound:
    return NotFound(message="RFP not found", entity="rfp", entity_id=rfp_id)


def _not_found(response_id: str) -> NotFound:
    return NotFound(message="Response not found", entity="response", entity_id=response_id)


def ensure_accepting_responses(rfp: dict[str, Any]) -> None:
    """The parent RFP must be published with its deadline still ahead."""
    status = rfp.get("status")
    if status != RFPStatus.PUBLISHED:
        raise InvalidStateTransition(
            message="This RFP is not accepting responses",
            entity="rfp",
            entity_id=rfp.get("id"),
            details={"status": status},
        )
    if clock.is_past(rfp.get("deadline")):
        raise ExpiredDeadline(
            message="The deadline for this RFP has passed",
            entity="rfp",
            entity_id=rfp.get("id"),
            details={"deadline": rfp.get("deadline")},
        )


def _load(response_id: str) -> dict[str, Any]:
    response = responses_repo.get_response_by_id(response_id)
    if not response:
        raise _not_found(response_id)
    return response


def _load_owned(response_id: str, actor: Actor, *, action: str) -> dict[str, Any]:
    require_role(actor, Role.RESPONDER, action=action)
    response = _load(response_id)
    ensure_owner(response, actor, entity_name="response")
    return response


def _load_rfp(rfp_id: str) -> dict[str, Any]:
    rfp = rfps_repo.get_rfp_by_id(rfp_id)
    if not rfp:
        raise _rfp_not_found(rfp_id)
    return rfp


def _diagnose(
    response_id: str,
    actor: Actor,
    *,
    allowed: frozenset[ResponseStatus],
    verb: str,
    check_rfp: bool = True,
) -> ProcurementError:
    """A guarded transaction was cancelled: re-read both items and report why."""
    response = responses_repo.get_response_by_id(response_id)
    if not response:
        return _not_found(response_id)
    if check_rfp:
        if response.get("submittedBy") != actor.id:
            return Forbidden(message="Not authorized to modify this response", entity="response", entity_id=response_id)
        rfp = rfps_repo.get_rfp_by_id(str(response.get("rfpId")))
        if not rfp:
            return _rfp_not_found(str(response.get("rfpId")))
        try:
            ensure_accepting_responses(rfp)
        except ProcurementError as e:
            return e
    status = response.get("status")
    if status not in allowed:
        return InvalidStateTransition(
            message=f"Cannot {verb} a response that is {status}",
            entity="response",
            entity_id=response_id,
            details={"status": status},
        )
    return InvalidStateTransition(
        message="Response changed concurrently; retry",
        entity="response",
        entity_id=response_id,
        details={"status": status},
    )


def create_response(actor: Actor, payload: dict[str, Any]) -> dict[str, Any]:
    require_role(actor, Role.RESPONDER, action="submit responses")
    rfp_id = str(payload.get("rfpId") or "").strip()
    if not rfp_id:
        raise ValidationError(message="rfpId is required")
    if not payload.get("proposal"):
        raise ValidationError(message="proposal is required")

    status = parse_response_status(payload.get("status") or ResponseStatus.DRAFT.value)
    if status not in _INITIAL_STATUSES:
        raise ValidationError(
            message="A new response must be draft or submitted", details={"status": status.value}
        )

    rfp = _load_rfp(rfp_id)
    ensure_accepting_responses(rfp)
    if responses_repo.claim_exists(rfp_id, actor.id):
        raise Conflict(
            message="You have already submitted a response for this RFP", entity="response", details={"rfpId": rfp_id}
        )

    item = responses_repo.build_response_item(rfp_id=rfp_id, owner_id=actor.id, fields=payload, status=status)
    count = aggregation.counts_as_submission(None, status)
    try:
        response = responses_repo.create_response(item, now=clock.now_iso(), count_submission=count)
    except DdbConflict:
        # Either the claim appeared concurrently or the RFP stopped accepting responses.
        if responses_repo.claim_exists(rfp_id, actor.id):
            raise Conflict(
                message="You have already submitted a response for this RFP", entity="response", details={"rfpId": rfp_id}
            ) from None
        ensure_accepting_responses(_load_rfp(rfp_id))
        raise Conflict(message="Response could not be created; retry", entity="response") from None

    log.info("response_created", response_id=response.get("id"), rfp_id=rfp_id, user_id=actor.id, status=status.value)
    if count:
        log.info("response_submitted", response_id=response.get("id"), rfp_id=rfp_id, user_id=actor.id)
    return response


def get_response(response_id: str, actor: Actor) -> dict[str, Any]:
    response = _load(response_id)
    rfp = rfps_repo.get_rfp_by_id(str(response.get("rfpId")))
    if not can_view_response(response, rfp, actor):
        raise Forbidden(message="Not authorized to view this response", entity="response", entity_id=response_id)
    return response


def list_responses(actor: Actor, *, status: str | None = None, rfp_id: str | None = None) -> list[dict[str, Any]]:
    """
    Responders see their own responses; requesters see the responses to
    RFPs they created.
    """
    want = parse_response_status(status) if status else None

    if actor.is_responder:
        rows = responses_repo.list_responses_by_owner(actor.id)
        if rfp_id:
            rows = [r for r in rows if r.get("rfpId") == rfp_id]
    else:
        if rfp_id:
            rfp_ids = [rfp_id]
            rfp = _load_rfp(rfp_id)
            if rfp.get("createdBy") != actor.id:
                raise Forbidden(message="Not authorized to view responses for this RFP", entity="rfp", entity_id=rfp_id)
        else:
            rfp_ids = [str(r["id"]) for r in _owned_rfps(actor.id)]
        rows = []
        for rid in rfp_ids:
            rows.extend(responses_repo.list_responses_for_rfp(rid))
        rows.sort(key=lambda r: str(r.get("createdAt") or ""), reverse=True)

    if want:
        rows = [r for r in rows if r.get("status") == want]
    return rows


def _owned_rfps(user_id: str) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    tok: str | None = None
    while True:
        page = rfps_repo.list_rfps_page(owner_id=user_id, limit=100, next_token=tok)
        out.extend(page.items)
        tok = page.next_token
        if not tok or not page.items:
            break
    return out


def update_response(response_id: str, actor: Actor, changes: dict[str, Any]) -> dict[str, Any]:
    response = _load_owned(response_id, actor, action="update responses")
    current = parse_response_status(response.get("status"))
    if current not in RESPONSE_EDITABLE:
        raise InvalidStateTransition(
            message=f"Cannot update a response that is {current.value}",
            entity="response",
            entity_id=response_id,
            details={"status": current.value},
        )

    rfp_id = str(response.get("rfpId"))
    ensure_accepting_responses(_load_rfp(rfp_id))

    now = clock.now_iso()
    ex = Expr()
    for k in _EDITABLE_FIELDS:
        if k not in changes:
            continue
        if changes[k] is None:
            if k == "proposal":
                raise ValidationError(message="proposal cannot be empty")
            ex.remove(k)
        else:
            ex.set(k, changes[k])

    new_status = current
    if changes.get("status") is not None:
        new_status = response_status_via_update(current, changes["status"])

    expected: frozenset[ResponseStatus] = RESPONSE_EDITABLE
    count = False
    if new_status != current:
        expected = frozenset({current})
        ex.set("status", new_status.value)
        count = aggregation.counts_as_submission(response, new_status)
        if count:
            aggregation.stamp_first_submission(ex, now=now)

    try:
        updated = responses_repo.update_response_guarded(
            response_id,
            rfp_id=rfp_id,
            owner_id=actor.id,
            expected_statuses=expected,
            ex=ex,
            now=now,
            count_submission=count,
        )
    except DdbConflict:
        raise _diagnose(response_id, actor, allowed=expected, verb="update") from None

    log.info("response_updated", response_id=response_id, rfp_id=rfp_id, user_id=actor.id, status=new_status.value)
    if count:
        log.info("response_submitted", response_id=response_id, rfp_id=rfp_id, user_id=actor.id)
    return updated or {}


def submit_response(response_id: str, actor: Actor) -> dict[str, Any]:
    response = _load_owned(response_id, actor, action="submit responses")
    nxt = next_response_status(response.get("status"), ResponseAction.SUBMIT)

    rfp_id = str(response.get("rfpId"))
    ensure_accepting_responses(_load_rfp(rfp_id))

    now = clock.now_iso()
    ex = Expr().set("status", nxt.value)
    count = aggregation.counts_as_submission(response, nxt)
    if count:
        aggregation.stamp_first_submission(ex, now=now)

    sources = response_sources(ResponseAction.SUBMIT)
    try:
        updated = responses_repo.update_response_guarded(
            response_id,
            rfp_id=rfp_id,
            owner_id=actor.id,
            expected_statuses=sources,
            ex=ex,
            now=now,
            count_submission=count,
        )
    except DdbConflict:
        raise _diagnose(response_id, actor, allowed=sources, verb="submit") from None

    log.info("response_submitted", response_id=response_id, rfp_id=rfp_id, user_id=actor.id)
    return updated or {}


def review_response(response_id: str, actor: Actor, *, outcome: Any, reviewer_notes: str | None = None) -> dict[str, Any]:
    require_role(actor, Role.REQUESTER, action="review responses")
    action = review_action_for(outcome)

    response = _load(response_id)
    rfp = _load_rfp(str(response.get("rfpId")))
    if not can_review(response, rfp, actor):
        raise Forbidden(message="You can only review responses to your own RFPs", entity="response", entity_id=response_id)

    nxt = next_response_status(response.get("status"), action)

    ex = Expr().set("status", nxt.value)
    if reviewer_notes is not None:
        ex.set("reviewerNotes", reviewer_notes)
    # reviewedAt is present exactly while the response carries a final outcome.
    if is_reviewed(nxt):
        ex.set("reviewedAt", clock.now_iso())
    else:
        ex.remove("reviewedAt")

    sources = response_sources(action)
    try:
        updated = responses_repo.review_response_guarded(response_id, expected_statuses=sources, ex=ex)
    except DdbConflict:
        raise _diagnose(response_id, actor, allowed=sources, verb=action.value.replace("_", " "), check_rfp=False) from None

    log.info("response_reviewed", response_id=response_id, rfp_id=rfp.get("id"), user_id=actor.id, outcome=nxt.value)
    return updated or {}


def delete_response(response_id: str, actor: Actor) -> None:
    response = _load_owned(response_id, actor, action="delete responses")
    status = response.get("status")
    if status not in RESPONSE_DELETABLE:
        raise InvalidStateTransition(
            message="Only draft responses can be deleted",
            entity="response",
            entity_id=response_id,
            details={"status": status},
        )
    try:
        responses_repo.delete_response_guarded(
            response_id,
            rfp_id=str(response.get("rfpId")),
            owner_id=actor.id,
            expected_statuses=RESPONSE_DELETABLE,
        )
    except DdbConflict:
        raise _diagnose(response_id, actor, allowed=RESPONSE_DELETABLE, verb="delete", check_rfp=False) from None
    log.info("response_deleted", response_id=response_id, rfp_id=response.get("rfpId"), user_id=actor.id)
