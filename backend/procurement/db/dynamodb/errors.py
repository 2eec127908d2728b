from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar


@dataclass(slots=True)
class DdbError(Exception):
    """
    A DynamoDB call failed after retries.

    Services translate `DdbConflict` into domain errors; the rest reaches the
    HTTP layer as a problem response with the class's `status_code`.
    The originating botocore exception is kept as `__cause__`.
    """

    status_code: ClassVar[int] = 500
    title: ClassVar[str] = "Storage Error"

    message: str
    operation: str | None = None
    table_name: str | None = None
    key: dict[str, Any] | None = None
    aws_request_id: str | None = None
    retryable: bool = False

    def __str__(self) -> str:
        return self.message


class DdbConflict(DdbError):
    """A condition expression (or a transaction condition) did not hold."""

    status_code = 409
    title = "Conflict"


class DdbValidation(DdbError):
    status_code = 400
    title = "Bad Request"


class DdbThrottled(DdbError):
    status_code = 503
    title = "Service Unavailable"


class DdbUnavailable(DdbError):
    status_code = 503
    title = "Service Unavailable"


class DdbInternal(DdbError):
    pass
