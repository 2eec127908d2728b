from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from botocore.exceptions import BotoCoreError, ClientError

from .errors import (
    DdbConflict,
    DdbError,
    DdbInternal,
    DdbThrottled,
    DdbUnavailable,
    DdbValidation,
)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 6
    base_delay_s: float = 0.05
    max_delay_s: float = 1.5


_RETRYABLE_CODES = {
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "RequestLimitExceeded",
    "InternalServerError",
    "ServiceUnavailable",
    # Returned directly by TransactWriteItems under contention.
    "TransactionConflictException",
}


def _sleep_backoff(policy: RetryPolicy, attempt: int) -> None:
    # Full jitter exponential backoff.
    exp = min(policy.max_delay_s, policy.base_delay_s * (2 ** max(0, attempt - 1)))
    time.sleep(random.random() * exp)


def _response_meta(e: ClientError) -> tuple[str, str | None]:
    resp = e.response or {}
    code = str((resp.get("Error") or {}).get("Code") or "")
    rid = (resp.get("ResponseMetadata") or {}).get("RequestId")
    return code, rid


def _cancellation_codes(e: ClientError) -> list[str]:
    """Per-item reason codes of a cancelled TransactWriteItems call ("None" = ok)."""
    reasons = (e.response or {}).get("CancellationReasons") or []
    return [str((r or {}).get("Code") or "None") for r in reasons]


def map_botocore_error(
    *,
    operation: str,
    table_name: str | None,
    key: dict[str, Any] | None,
    exc: Exception,
) -> DdbError:
    if isinstance(exc, DdbError):
        return exc

    common: dict[str, Any] = {"operation": operation, "table_name": table_name, "key": key}

    if isinstance(exc, ClientError):
        code, rid = _response_meta(exc)
        common["aws_request_id"] = rid

        if code == "ConditionalCheckFailedException":
            return DdbConflict(message="DynamoDB conditional check failed", **common)

        if code == "TransactionCanceledException":
            reasons = _cancellation_codes(exc)
            if "TransactionConflict" in reasons:
                return DdbThrottled(message="DynamoDB transaction conflict", retryable=True, **common)
            if "ConditionalCheckFailed" in reasons:
                return DdbConflict(message="DynamoDB transaction condition failed", **common)
            return DdbInternal(message="DynamoDB transaction cancelled", **common)

        if code in ("ValidationException", "ParamValidationError"):
            return DdbValidation(message="DynamoDB request validation failed", **common)

        if code in ("AccessDeniedException", "UnrecognizedClientException", "ResourceNotFoundException"):
            return DdbUnavailable(message="DynamoDB table unavailable", **common)

        if code in _RETRYABLE_CODES:
            return DdbThrottled(message="DynamoDB request throttled or unavailable", retryable=True, **common)

        return DdbInternal(message=f"DynamoDB request failed ({code or 'ClientError'})", **common)

    if isinstance(exc, BotoCoreError):
        return DdbUnavailable(message="DynamoDB client error", retryable=True, **common)

    return DdbInternal(message="Unexpected DynamoDB error", **common)


def ddb_call(
    operation: str,
    fn: Callable[[], T],
    *,
    table_name: str | None = None,
    key: dict[str, Any] | None = None,
    retry_policy: RetryPolicy | None = None,
) -> T:
    policy = retry_policy or RetryPolicy()
    attempts = max(1, int(policy.max_attempts))

    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except Exception as e:  # noqa: BLE001
            mapped = map_botocore_error(operation=operation, table_name=table_name, key=key, exc=e)

            # Validation and conditional failures are never retried.
            if not mapped.retryable or attempt >= attempts:
                raise mapped from e

            _sleep_backoff(policy, attempt)

    raise DdbInternal(message="DynamoDB request failed", operation=operation, table_name=table_name, key=key)
