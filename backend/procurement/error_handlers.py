from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from .db.dynamodb.errors import DdbError
from .errors import ProcurementError
from .observability.logging import get_logger
from .problem_details import problem_for_error, problem_response


def _on_domain_error(request: Request, exc: ProcurementError) -> Response:
    if exc.status_code >= 500:
        get_logger("domain").error("domain_error", kind=exc.kind, error=exc.message, path=request.url.path)
    return problem_for_error(request, exc)


def storage_problem(request: Request, exc: DdbError) -> Response:
    """Problem response for a DynamoDB error; also used where exception handlers do not reach."""
    if exc.status_code >= 500:
        get_logger("dynamodb").error(
            "ddb_error",
            operation=exc.operation,
            table=exc.table_name,
            aws_request_id=exc.aws_request_id,
            error=exc.message,
        )

    extensions = {
        "kind": "storage_error",
        "operation": exc.operation,
        "awsRequestId": exc.aws_request_id,
        "retryable": bool(exc.retryable),
    }
    return problem_response(
        request=request,
        status_code=exc.status_code,
        title=exc.title,
        detail=exc.message,
        extensions={k: v for k, v in extensions.items() if v is not None},
    )


def _on_http_error(request: Request, exc: StarletteHTTPException) -> Response:
    detail = None if exc.detail is None else str(exc.detail)
    if exc.status_code == 404 and detail in (None, "Not Found"):
        detail = "Route not found"
    return problem_response(request=request, status_code=exc.status_code, detail=detail)


def _on_request_validation(request: Request, exc: RequestValidationError) -> Response:
    errors = []
    for e in exc.errors():
        loc = [str(x) for x in (e.get("loc") or ())]
        errors.append(
            {
                "location": loc,
                "path": ".".join(x for x in loc if x != "body"),
                "message": e.get("msg", "Invalid value"),
                "type": e.get("type"),
            }
        )
    return problem_response(
        request=request,
        status_code=422,
        title="Validation Failed",
        detail="Request validation failed",
        errors=errors,
        extensions={"kind": "validation_error"},
    )


def _on_unhandled(request: Request, exc: Exception) -> Response:
    user = getattr(request.state, "user", None)
    get_logger("unhandled").exception(
        "unhandled_exception",
        http_method=request.method.upper(),
        path=request.url.path,
        user_id=getattr(user, "id", None),
    )
    return problem_response(
        request=request,
        status_code=500,
        detail=str(exc) or exc.__class__.__name__,
        extensions={"kind": "internal_error"},
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ProcurementError, _on_domain_error)  # type: ignore[arg-type]
    app.add_exception_handler(DdbError, storage_problem)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _on_http_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _on_request_validation)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _on_unhandled)
