from __future__ import annotations

from functools import lru_cache
from typing import Any

import boto3
from botocore.config import Config

from ...settings import settings


def _client_kwargs() -> dict[str, Any]:
    # Adaptive botocore retries underneath; ddb_call adds its own narrow retry on top.
    kwargs: dict[str, Any] = {
        "region_name": settings.aws_region,
        "config": Config(retries={"max_attempts": 10, "mode": "adaptive"}, connect_timeout=2, read_timeout=10),
    }
    # DynamoDB Local / LocalStack during development.
    if settings.aws_endpoint_url:
        kwargs["endpoint_url"] = settings.aws_endpoint_url
    return kwargs


@lru_cache(maxsize=1)
def dynamodb_resource():
    return boto3.resource("dynamodb", **_client_kwargs())


@lru_cache(maxsize=1)
def dynamodb_client():
    return boto3.client("dynamodb", **_client_kwargs())


def table_resource(table_name: str):
    return dynamodb_resource().Table(table_name)
