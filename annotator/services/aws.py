from __future__ import annotations

from typing import Any

import boto3
from botocore.config import Config

from ..config import settings

_RETRY_CONFIG = Config(retries={"max_attempts": 3, "mode": "standard"})


def _client_kwargs(service: str) -> dict[str, Any]:
    kwargs: dict[str, Any] = {"region_name": settings.aws.region, "config": _RETRY_CONFIG}
    if settings.aws.access_key_id and settings.aws.secret_access_key:
        kwargs["aws_access_key_id"] = settings.aws.access_key_id
        kwargs["aws_secret_access_key"] = settings.aws.secret_access_key
    # custom endpoints (MinIO, localstack) only apply to blob storage
    if service == "s3" and settings.aws.s3_endpoint_url:
        kwargs["endpoint_url"] = settings.aws.s3_endpoint_url
    return kwargs


def boto3_client(service: str) -> Any:
    return boto3.client(service, **_client_kwargs(service))
