from __future__ import annotations

from functools import lru_cache

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError

from ...settings import Settings
from .errors import ConfigurationError


@lru_cache(maxsize=8)
def botocore_config(*, connect_timeout: float = 2, read_timeout: float = 10, max_attempts: int = 10) -> Config:
    # botocore retries (adaptive) are the only retry layer; nothing above retries.
    return Config(
        retries={"max_attempts": int(max_attempts), "mode": "adaptive"},
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
    )


def dynamodb_client(settings: Settings):
    """
    Build a low-level DynamoDB client from settings plus the ambient boto3 chain.

    Raises ConfigurationError when region or credentials cannot be resolved,
    or when botocore rejects the endpoint or client options.
    """
    try:
        session = boto3.session.Session(region_name=settings.aws_region or None)
        region = session.region_name
    except BotoCoreError as e:
        raise ConfigurationError(
            message=f"AWS session could not be created: {e}",
            operation="Config",
            cause=e,
        ) from e

    if not region:
        raise ConfigurationError(
            message="AWS region could not be resolved (set AWS_REGION or AWS_DEFAULT_REGION)",
            operation="Config",
        )

    try:
        credentials = session.get_credentials()
    except BotoCoreError as e:
        raise ConfigurationError(
            message=f"AWS credentials could not be resolved: {e}",
            operation="Config",
            cause=e,
        ) from e
    if credentials is None:
        raise ConfigurationError(message="AWS credentials could not be resolved", operation="Config")

    try:
        return session.client(
            "dynamodb",
            region_name=region,
            endpoint_url=settings.ddb_endpoint_url or None,
            config=botocore_config(
                connect_timeout=settings.ddb_connect_timeout,
                read_timeout=settings.ddb_read_timeout,
                max_attempts=settings.ddb_max_attempts,
            ),
        )
    except (BotoCoreError, ValueError) as e:
        # botocore rejects malformed endpoint URLs and region names with ValueError.
        raise ConfigurationError(
            message=f"DynamoDB client could not be created: {e}",
            operation="Config",
            cause=e,
        ) from e
