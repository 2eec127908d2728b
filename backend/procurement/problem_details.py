"""
RFC 7807 problem responses.

Body members: `type`, `title`, `status`, `detail`, `instance`, `requestId`,
optional `errors` (field-level validation) and `extensions` (at least
`kind`). Server-error detail is withheld in production.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Any

from fastapi import Request
from fastapi.responses import ORJSONResponse

from .errors import ProcurementError
from .settings import get_settings

PROBLEM_JSON = "application/problem+json"


def _title_for(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Internal Server Error" if status_code >= 500 else "Error"


def problem_response(
    *,
    request: Request,
    status_code: int,
    title: str | None = None,
    detail: str | None = None,
    errors: list[dict[str, Any]] | None = None,
    extensions: dict[str, Any] | None = None,
) -> ORJSONResponse:
    status_code = int(status_code)
    body: dict[str, Any] = {
        "type": "about:blank",
        "title": title or _title_for(status_code),
        "status": status_code,
        "instance": request.url.path,
    }
    if detail and not (status_code >= 500 and get_settings().is_production):
        body["detail"] = str(detail)

    rid = getattr(request.state, "request_id", None) or request.headers.get("x-request-id")
    if rid:
        body["requestId"] = str(rid)
    if errors:
        body["errors"] = errors
    if extensions:
        body["extensions"] = extensions

    return ORJSONResponse(status_code=status_code, content=body, media_type=PROBLEM_JSON)


def problem_for_error(request: Request, exc: ProcurementError) -> ORJSONResponse:
    """Domain errors carry their own status, title and `kind`; details are flattened into extensions."""
    extensions: dict[str, Any] = {"kind": exc.kind}
    if exc.entity:
        extensions["entity"] = exc.entity
    if exc.entity_id:
        extensions["entityId"] = exc.entity_id
    if exc.details:
        extensions.update(exc.details)
    return problem_response(
        request=request,
        status_code=exc.status_code,
        title=exc.title,
        detail=exc.message,
        extensions=extensions,
    )
