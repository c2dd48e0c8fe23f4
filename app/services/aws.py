"""Shared AWS helpers for service clients."""

from __future__ import annotations

import base64
import logging
from typing import Any, Optional

import boto3
from botocore.config import Config

from app.config.settings import settings

logger = logging.getLogger(__name__)


def decode_bedrock_api_key(secret_value: Optional[str]) -> tuple[str, str] | None:
    """Decode the BEDROCK_API_KEY secret into access/secret key components."""

    if not secret_value:
        return None

    try:
        decoded_bytes = base64.b64decode(secret_value.strip())
    except Exception:  # pragma: no cover
        decoded_bytes = secret_value.encode("utf-8", "ignore")

    filtered = "".join(chr(b) for b in decoded_bytes if 31 < b < 127)
    if ":" not in filtered:
        return None
    access_key, secret_key = filtered.split(":", 1)
    return access_key, secret_key


def bedrock_client_config() -> Config:
    """Timeouts from settings; retries are owned by the fallback orchestrator."""

    return Config(
        connect_timeout=settings.bedrock.connect_timeout_seconds,
        read_timeout=settings.bedrock.read_timeout_seconds,
        retries={"total_max_attempts": 1, "mode": "standard"},
    )


def create_boto3_client(
    service_name: str,
    *,
    region_name: str | None = None,
    aws_access_key_id: str | None = None,
    aws_secret_access_key: str | None = None,
    config: Config | None = None,
) -> Any:
    """Instantiate a boto3 client using configured credentials if available."""

    bedrock = settings.bedrock
    client_kwargs: dict[str, Any] = {"region_name": region_name or bedrock.region}
    if config is not None:
        client_kwargs["config"] = config

    if aws_access_key_id and aws_secret_access_key:
        client_kwargs["aws_access_key_id"] = aws_access_key_id
        client_kwargs["aws_secret_access_key"] = aws_secret_access_key
    elif bedrock.api_key:
        decoded = decode_bedrock_api_key(bedrock.api_key.get_secret_value())
        if decoded:
            client_kwargs["aws_access_key_id"], client_kwargs["aws_secret_access_key"] = decoded
        else:
            logger.warning("BEDROCK_API_KEY could not be decoded; using default credentials")
    elif bedrock.access_key and bedrock.secret_key:
        client_kwargs["aws_access_key_id"] = bedrock.access_key
        client_kwargs["aws_secret_access_key"] = bedrock.secret_key.get_secret_value()
    return boto3.client(service_name, **client_kwargs)


__all__ = ["bedrock_client_config", "create_boto3_client", "decode_bedrock_api_key"]
