from __future__ import annotations

from functools import lru_cache
from typing import Any

import boto3
from botocore.config import Config

from ...settings import Settings

# DynamoDB Local accepts any credentials, but boto3 still needs some to sign.
_OFFLINE_CREDENTIALS = {"aws_access_key_id": "fake", "aws_secret_access_key": "fake"}


@lru_cache(maxsize=1)
def botocore_config() -> Config:
    # Keep botocore retries enabled (adaptive is best-effort); we still do an app-layer
    # retry for a narrow set of known-safe transient failures.
    return Config(
        retries={"max_attempts": 10, "mode": "adaptive"},
        connect_timeout=2,
        read_timeout=10,
    )


def _session_kwargs(region: str, endpoint_url: str | None, offline: bool) -> dict[str, Any]:
    kwargs: dict[str, Any] = {"region_name": region, "config": botocore_config()}
    if endpoint_url:
        kwargs["endpoint_url"] = endpoint_url
    if offline:
        kwargs.update(_OFFLINE_CREDENTIALS)
    return kwargs


@lru_cache(maxsize=4)
def dynamodb_resource(region: str, endpoint_url: str | None = None, offline: bool = False):
    return boto3.resource("dynamodb", **_session_kwargs(region, endpoint_url, offline))


@lru_cache(maxsize=4)
def dynamodb_client(region: str, endpoint_url: str | None = None, offline: bool = False):
    return boto3.client("dynamodb", **_session_kwargs(region, endpoint_url, offline))


def resource_and_client_for(settings: Settings):
    args = (settings.aws_region, settings.resolved_dynamodb_endpoint, bool(settings.is_offline))
    return dynamodb_resource(*args), dynamodb_client(*args)
