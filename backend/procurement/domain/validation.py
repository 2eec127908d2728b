from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from ..errors import ValidationError
from . import clock
from .models import DocumentType

ALLOWED_CONTENT_TYPES: dict[str, str] = {
    "application/pdf": ".pdf",
    "application/msword": ".doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "application/vnd.ms-excel": ".xls",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
    "text/plain": ".txt",
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
}


def _number(v: Any) -> Decimal | None:
    if v is None:
        return None
    try:
        d = Decimal(str(v))
    except ArithmeticError:
        raise ValidationError(message="Budget values must be numbers") from None
    if not d.is_finite():
        raise ValidationError(message="Budget values must be finite numbers")
    return d


def future_deadline(value: Any) -> str:
    """Parse a deadline and require it to be strictly after now; returns the stored form."""
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = clock.parse_iso(str(value))
        except ValueError:
            raise ValidationError(message="Deadline must be a valid ISO-8601 date") from None
    iso = clock.to_iso(dt)
    if clock.is_past(iso):
        raise ValidationError(message="Deadline must be in the future", details={"deadline": iso})
    return iso


def budget_range(budget_min: Any, budget_max: Any) -> None:
    lo = _number(budget_min)
    hi = _number(budget_max)
    for v in (lo, hi):
        if v is not None and v < 0:
            raise ValidationError(message="Budget values cannot be negative")
    if lo is not None and hi is not None and lo > hi:
        raise ValidationError(
            message="Minimum budget cannot be greater than maximum budget",
            details={"budgetMin": str(lo), "budgetMax": str(hi)},
        )


def document_parent(document_type: Any, rfp_id: str | None, response_id: str | None) -> tuple[str, str]:
    """
    Enforce the documentType/parent exclusivity and return `(parent_kind, parent_id)`
    where parent_kind is "rfp" or "response".
    """
    try:
        dt = DocumentType(document_type)
    except ValueError:
        allowed = ", ".join(t.value for t in DocumentType)
        raise ValidationError(message=f"Document type must be one of: {allowed}") from None

    rfp_id = (rfp_id or "").strip() or None
    response_id = (response_id or "").strip() or None

    if dt == DocumentType.RFP_DOCUMENT:
        if not rfp_id or response_id:
            raise ValidationError(message="RFP documents require rfpId and must not carry responseId")
        return "rfp", rfp_id
    if dt == DocumentType.RESPONSE_DOCUMENT:
        if not response_id or rfp_id:
            raise ValidationError(message="Response documents require responseId and must not carry rfpId")
        return "response", response_id

    if bool(rfp_id) == bool(response_id):
        raise ValidationError(message="Attachments must reference exactly one of rfpId or responseId")
    return ("rfp", rfp_id) if rfp_id else ("response", response_id)  # type: ignore[return-value]


def upload(content_type: str | None, size: int, max_bytes: int) -> str:
    ct = (content_type or "").split(";")[0].strip().lower()
    if ct not in ALLOWED_CONTENT_TYPES:
        raise ValidationError(
            message="Invalid file type. Only PDF, Word, Excel, text and image files are allowed.",
            details={"contentType": ct or None},
        )
    if size <= 0:
        raise ValidationError(message="Uploaded file is empty")
    if size > max_bytes:
        raise ValidationError(
            message=f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB.",
            details={"size": size, "max": max_bytes},
        )
    return ct
