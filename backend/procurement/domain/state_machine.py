"""
Lifecycle transition tables for RFPs and Responses.

Every status change goes through `next_*_status`; callers never compare
status strings ad hoc. The same tables also yield the set of source states an
action is valid from, which repositories turn into the condition of the
compare-and-swap write.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from ..errors import InvalidStateTransition, ValidationError
from .models import ResponseStatus, RFPStatus


class RFPAction(str, Enum):
    PUBLISH = "publish"
    CLOSE = "close"


class ResponseAction(str, Enum):
    SUBMIT = "submit"
    START_REVIEW = "start_review"
    APPROVE = "approve"
    REJECT = "reject"


RFP_TRANSITIONS: dict[tuple[RFPStatus, RFPAction], RFPStatus] = {
    (RFPStatus.DRAFT, RFPAction.PUBLISH): RFPStatus.PUBLISHED,
    (RFPStatus.PUBLISHED, RFPAction.CLOSE): RFPStatus.CLOSED,
}

# Non-transition guards.
RFP_EDITABLE = frozenset({RFPStatus.DRAFT, RFPStatus.PUBLISHED})
RFP_DELETABLE = frozenset({RFPStatus.DRAFT})

RESPONSE_TRANSITIONS: dict[tuple[ResponseStatus, ResponseAction], ResponseStatus] = {
    (ResponseStatus.DRAFT, ResponseAction.SUBMIT): ResponseStatus.SUBMITTED,
    (ResponseStatus.SUBMITTED, ResponseAction.START_REVIEW): ResponseStatus.UNDER_REVIEW,
    (ResponseStatus.UNDER_REVIEW, ResponseAction.START_REVIEW): ResponseStatus.UNDER_REVIEW,
    (ResponseStatus.SUBMITTED, ResponseAction.APPROVE): ResponseStatus.APPROVED,
    (ResponseStatus.UNDER_REVIEW, ResponseAction.APPROVE): ResponseStatus.APPROVED,
    (ResponseStatus.SUBMITTED, ResponseAction.REJECT): ResponseStatus.REJECTED,
    (ResponseStatus.UNDER_REVIEW, ResponseAction.REJECT): ResponseStatus.REJECTED,
}

RESPONSE_EDITABLE = frozenset(
    {ResponseStatus.DRAFT, ResponseStatus.SUBMITTED, ResponseStatus.UNDER_REVIEW}
)
RESPONSE_DELETABLE = frozenset({ResponseStatus.DRAFT})
RESPONSE_REVIEWED = frozenset({ResponseStatus.APPROVED, ResponseStatus.REJECTED})

_REVIEW_OUTCOMES: dict[ResponseStatus, ResponseAction] = {
    ResponseStatus.UNDER_REVIEW: ResponseAction.START_REVIEW,
    ResponseStatus.APPROVED: ResponseAction.APPROVE,
    ResponseStatus.REJECTED: ResponseAction.REJECT,
}


def parse_rfp_status(value: Any) -> RFPStatus:
    try:
        return RFPStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in RFPStatus)
        raise ValidationError(message=f"Status must be one of: {allowed}") from None


def parse_response_status(value: Any) -> ResponseStatus:
    try:
        return ResponseStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in ResponseStatus)
        raise ValidationError(message=f"Status must be one of: {allowed}") from None


def rfp_sources(action: RFPAction) -> frozenset[RFPStatus]:
    return frozenset(src for (src, act) in RFP_TRANSITIONS if act == action)


def response_sources(action: ResponseAction) -> frozenset[ResponseStatus]:
    return frozenset(src for (src, act) in RESPONSE_TRANSITIONS if act == action)


def next_rfp_status(current: Any, action: RFPAction) -> RFPStatus:
    cur = parse_rfp_status(current)
    nxt = RFP_TRANSITIONS.get((cur, action))
    if nxt is None:
        raise InvalidStateTransition(
            message=f"Cannot {action.value} an RFP that is {cur.value}",
            entity="rfp",
            details={"status": cur.value, "action": action.value},
        )
    return nxt


def rfp_status_via_update(current: Any, requested: Any) -> RFPStatus:
    """
    Resolve a status written through a plain update.

    Staying put is always fine; otherwise the change must be a single step
    of the transition table (draft -> published, published -> closed).
    """
    cur = parse_rfp_status(current)
    want = parse_rfp_status(requested)
    if want == cur:
        return cur
    for (src, _act), dst in RFP_TRANSITIONS.items():
        if src == cur and dst == want:
            return want
    raise InvalidStateTransition(
        message=f"Cannot change RFP status from {cur.value} to {want.value}",
        entity="rfp",
        details={"status": cur.value, "requested": want.value},
    )


def next_response_status(current: Any, action: ResponseAction) -> ResponseStatus:
    cur = parse_response_status(current)
    nxt = RESPONSE_TRANSITIONS.get((cur, action))
    if nxt is None:
        raise InvalidStateTransition(
            message=f"Cannot {action.value.replace('_', ' ')} a response that is {cur.value}",
            entity="response",
            details={"status": cur.value, "action": action.value},
        )
    return nxt


def response_status_via_update(current: Any, requested: Any) -> ResponseStatus:
    """
    Owners may only keep the status or submit a draft through an update;
    review outcomes are reserved to the review action.
    """
    cur = parse_response_status(current)
    want = parse_response_status(requested)
    if want == cur:
        return cur
    if RESPONSE_TRANSITIONS.get((cur, ResponseAction.SUBMIT)) == want:
        return want
    raise InvalidStateTransition(
        message=f"Cannot change response status from {cur.value} to {want.value}",
        entity="response",
        details={"status": cur.value, "requested": want.value},
    )


def review_action_for(outcome: Any) -> ResponseAction:
    try:
        return _REVIEW_OUTCOMES[ResponseStatus(outcome)]
    except (KeyError, ValueError):
        allowed = ", ".join(s.value for s in _REVIEW_OUTCOMES)
        raise ValidationError(message=f"Review outcome must be one of: {allowed}") from None


def is_reviewed(status: Any) -> bool:
    return status in RESPONSE_REVIEWED
