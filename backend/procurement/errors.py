from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class ProcurementError(Exception):
    """Base error for domain operations.

    Caught by a FastAPI exception handler and rendered into an RFC7807
    problem-details response. `kind` is stable and machine-readable;
    `message` is for humans.
    """

    message: str
    entity: str | None = None
    entity_id: str | None = None
    details: dict[str, Any] | None = None

    kind = "error"
    status_code = 500
    title = "Error"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class NotFound(ProcurementError):
    kind = "not_found"
    status_code = 404
    title = "Not Found"


@dataclass(slots=True)
class Unauthorized(ProcurementError):
    kind = "unauthorized"
    status_code = 401
    title = "Unauthorized"


@dataclass(slots=True)
class Forbidden(ProcurementError):
    kind = "forbidden"
    status_code = 403
    title = "Forbidden"


@dataclass(slots=True)
class RoleNotPermitted(ProcurementError):
    kind = "role_not_permitted"
    status_code = 403
    title = "Role Not Permitted"


@dataclass(slots=True)
class InvalidStateTransition(ProcurementError):
    kind = "invalid_state_transition"
    status_code = 409
    title = "Invalid State Transition"


@dataclass(slots=True)
class ExpiredDeadline(ProcurementError):
    kind = "expired_deadline"
    status_code = 400
    title = "Deadline Passed"


@dataclass(slots=True)
class Conflict(ProcurementError):
    kind = "conflict"
    status_code = 409
    title = "Conflict"


@dataclass(slots=True)
class ValidationError(ProcurementError):
    kind = "validation_error"
    status_code = 400
    title = "Validation Failed"


@dataclass(slots=True)
class StorageError(ProcurementError):
    kind = "storage_error"
    status_code = 502
    title = "Storage Error"
