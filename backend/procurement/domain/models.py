from __future__ import annotations

from enum import Enum
from typing import Any


class Role(str, Enum):
    REQUESTER = "requester"
    RESPONDER = "responder"


class RFPStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    CLOSED = "closed"
    # Terminal; reserved for an administrative path no exposed action enters.
    CANCELLED = "cancelled"


class ResponseStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class DocumentType(str, Enum):
    RFP_DOCUMENT = "rfp_document"
    RESPONSE_DOCUMENT = "response_document"
    ATTACHMENT = "attachment"


_ROLE_ALIASES = {
    "requester": Role.REQUESTER,
    "buyer": Role.REQUESTER,
    "responder": Role.RESPONDER,
    "supplier": Role.RESPONDER,
}


def normalize_role(value: Any) -> Role | None:
    """
    Accept canonical role names plus the legacy buyer/supplier vocabulary.
    Returns None for anything unrecognized.
    """
    if isinstance(value, Role):
        return value
    low = str(value or "").strip().lower().replace("-", "_")
    return _ROLE_ALIASES.get(low)
