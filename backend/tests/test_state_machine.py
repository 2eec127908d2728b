from __future__ import annotations

import pytest

from procurement.domain.models import ResponseStatus, RFPStatus
from procurement.domain.state_machine import (
    RFPAction,
    ResponseAction,
    is_reviewed,
    next_response_status,
    next_rfp_status,
    response_sources,
    response_status_via_update,
    review_action_for,
    rfp_sources,
    rfp_status_via_update,
)
from procurement.errors import InvalidStateTransition, ValidationError


def test_rfp_publish_and_close_follow_table():
    assert next_rfp_status("draft", RFPAction.PUBLISH) == RFPStatus.PUBLISHED
    assert next_rfp_status(RFPStatus.PUBLISHED, RFPAction.CLOSE) == RFPStatus.CLOSED


@pytest.mark.parametrize(
    "status,action",
    [
        ("draft", RFPAction.CLOSE),
        ("published", RFPAction.PUBLISH),
        ("closed", RFPAction.PUBLISH),
        ("closed", RFPAction.CLOSE),
        ("cancelled", RFPAction.PUBLISH),
    ],
)
def test_rfp_transitions_outside_table_are_rejected(status, action):
    with pytest.raises(InvalidStateTransition) as ei:
        next_rfp_status(status, action)
    assert ei.value.details["status"] == status


def test_unknown_status_is_a_validation_error():
    with pytest.raises(ValidationError):
        next_rfp_status("archived", RFPAction.PUBLISH)


def test_sources_are_derived_from_table():
    assert rfp_sources(RFPAction.PUBLISH) == {RFPStatus.DRAFT}
    assert rfp_sources(RFPAction.CLOSE) == {RFPStatus.PUBLISHED}
    assert response_sources(ResponseAction.SUBMIT) == {ResponseStatus.DRAFT}
    assert response_sources(ResponseAction.APPROVE) == {ResponseStatus.SUBMITTED, ResponseStatus.UNDER_REVIEW}


def test_rfp_status_via_update_allows_single_steps_only():
    assert rfp_status_via_update("draft", "draft") == RFPStatus.DRAFT
    assert rfp_status_via_update("draft", "published") == RFPStatus.PUBLISHED
    assert rfp_status_via_update("published", "closed") == RFPStatus.CLOSED
    with pytest.raises(InvalidStateTransition):
        rfp_status_via_update("draft", "closed")
    with pytest.raises(InvalidStateTransition):
        rfp_status_via_update("published", "draft")


def test_status_helpers_accept_enum_members_as_current():
    assert rfp_status_via_update(RFPStatus.DRAFT, "published") == RFPStatus.PUBLISHED
    assert rfp_status_via_update(RFPStatus.PUBLISHED, RFPStatus.PUBLISHED) == RFPStatus.PUBLISHED
    assert response_status_via_update(ResponseStatus.DRAFT, "submitted") == ResponseStatus.SUBMITTED
    assert review_action_for(ResponseStatus.REJECTED) == ResponseAction.REJECT


def test_response_review_path():
    assert next_response_status("submitted", ResponseAction.START_REVIEW) == ResponseStatus.UNDER_REVIEW
    assert next_response_status("under_review", ResponseAction.START_REVIEW) == ResponseStatus.UNDER_REVIEW
    assert next_response_status("under_review", ResponseAction.APPROVE) == ResponseStatus.APPROVED
    assert next_response_status("submitted", ResponseAction.REJECT) == ResponseStatus.REJECTED


@pytest.mark.parametrize(
    "status,action",
    [
        ("draft", ResponseAction.APPROVE),
        ("draft", ResponseAction.START_REVIEW),
        ("submitted", ResponseAction.SUBMIT),
        ("approved", ResponseAction.REJECT),
        ("rejected", ResponseAction.APPROVE),
    ],
)
def test_response_transitions_outside_table_are_rejected(status, action):
    with pytest.raises(InvalidStateTransition):
        next_response_status(status, action)


def test_owner_update_can_only_submit_a_draft():
    assert response_status_via_update("draft", "submitted") == ResponseStatus.SUBMITTED
    assert response_status_via_update("submitted", "submitted") == ResponseStatus.SUBMITTED
    with pytest.raises(InvalidStateTransition):
        response_status_via_update("submitted", "approved")
    with pytest.raises(InvalidStateTransition):
        response_status_via_update("submitted", "draft")


def test_review_outcomes():
    assert review_action_for("approved") == ResponseAction.APPROVE
    assert review_action_for("under_review") == ResponseAction.START_REVIEW
    with pytest.raises(ValidationError):
        review_action_for("submitted")
    with pytest.raises(ValidationError):
        review_action_for("nope")
    assert is_reviewed("rejected") is True
    assert is_reviewed(ResponseStatus.UNDER_REVIEW) is False
