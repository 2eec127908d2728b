from __future__ import annotations

from datetime import timedelta

import pytest

from procurement.domain import validation
from procurement.errors import ValidationError


def test_future_deadline_normalizes_to_storage_form(clock):
    iso = validation.future_deadline("2030-02-01T10:00:00+02:00")
    assert iso == "2030-02-01T08:00:00.000000Z"
    assert validation.future_deadline(clock.now + timedelta(seconds=1)).endswith("Z")


@pytest.mark.parametrize("value", ["not a date", "2030-13-01"])
def test_future_deadline_rejects_garbage(clock, value):
    with pytest.raises(ValidationError):
        validation.future_deadline(value)


def test_future_deadline_rejects_now_and_past(clock):
    with pytest.raises(ValidationError):
        validation.future_deadline(clock.now)
    with pytest.raises(ValidationError):
        validation.future_deadline(clock.now - timedelta(days=1))


def test_budget_range():
    validation.budget_range(None, None)
    validation.budget_range(100, 100)
    validation.budget_range(None, 5)
    with pytest.raises(ValidationError):
        validation.budget_range(10, 5)
    with pytest.raises(ValidationError):
        validation.budget_range(-1, None)
    with pytest.raises(ValidationError):
        validation.budget_range(None, float("inf"))
    with pytest.raises(ValidationError):
        validation.budget_range(float("nan"), 10)


def test_document_parent_exclusivity():
    assert validation.document_parent("rfp_document", "rfp_1", None) == ("rfp", "rfp_1")
    assert validation.document_parent("response_document", None, "resp_1") == ("response", "resp_1")
    assert validation.document_parent("attachment", None, "resp_1") == ("response", "resp_1")

    with pytest.raises(ValidationError):
        validation.document_parent("rfp_document", None, None)
    with pytest.raises(ValidationError):
        validation.document_parent("rfp_document", "rfp_1", "resp_1")
    with pytest.raises(ValidationError):
        validation.document_parent("response_document", "rfp_1", None)
    with pytest.raises(ValidationError):
        validation.document_parent("attachment", "rfp_1", "resp_1")
    with pytest.raises(ValidationError):
        validation.document_parent("attachment", "", "  ")
    with pytest.raises(ValidationError):
        validation.document_parent("invoice", "rfp_1", None)


def test_upload_checks_type_and_size():
    assert validation.upload("application/pdf; charset=binary", 10, 100) == "application/pdf"
    with pytest.raises(ValidationError):
        validation.upload("application/x-msdownload", 10, 100)
    with pytest.raises(ValidationError):
        validation.upload("application/pdf", 0, 100)
    with pytest.raises(ValidationError):
        validation.upload("application/pdf", 101, 100)
