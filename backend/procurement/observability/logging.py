"""
structlog setup: one JSON object per line on stdout.

Every event carries the request id and, once authenticated, the acting
user's id. Credential-bearing keys are masked before rendering.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from .context import get_actor_id, get_request_id

_SECRET_KEYS = frozenset({"password", "passwordHash", "newPassword", "currentPassword", "access_token", "authorization"})
_NOISY_LOGGERS = ("botocore", "boto3", "urllib3", "s3transfer")

_CONFIGURED = False


def _add_request_context(_: logging.Logger, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    rid = get_request_id()
    if rid:
        event_dict.setdefault("request_id", rid)
    uid = get_actor_id()
    if uid:
        event_dict.setdefault("user_id", uid)
    return event_dict


def _mask_secrets(_: logging.Logger, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for k in _SECRET_KEYS.intersection(event_dict):
        event_dict[k] = "[redacted]"
    return event_dict


def _shared_processors() -> list[Any]:
    return [
        _add_request_context,
        _mask_secrets,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def configure_logging(*, level: str | int = "INFO") -> None:
    global _CONFIGURED
    if _CONFIGURED:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=_shared_processors(),
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    # uvicorn's own handlers would bypass the JSON formatter.
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(name)
        lg.handlers = []
        lg.propagate = True
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


def get_logger(name: str | None = None):
    return structlog.get_logger(name)
