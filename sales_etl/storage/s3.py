"""
sales_etl/storage/s3.py

S3-compatible object storage backend (AWS S3, MinIO, LocalStack).
"""

from __future__ import annotations

import logging
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from sales_etl.errors import ObjectStorageError
from sales_etl.storage.base import ObjectLocator

logger = logging.getLogger(__name__)

_MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


class S3ObjectStorage:
    """
    Source and sink over an S3 client. Credentials come from the standard boto3 chain.
    """

    def __init__(
        self,
        *,
        region: str = "us-east-1",
        endpoint_url: str | None = None,
        client: Any | None = None,
    ) -> None:
        if client is None:
            client_kwargs: dict[str, Any] = {
                "service_name": "s3",
                "region_name": region,
                "config": Config(signature_version="s3v4"),
            }
            if endpoint_url:
                client_kwargs["endpoint_url"] = endpoint_url
            client = boto3.client(**client_kwargs)
        self._client = client

    def fetch(self, locator: ObjectLocator) -> bytes:
        key = locator.key.lstrip("/")
        try:
            response = self._client.get_object(Bucket=locator.bucket, Key=key)
            content = response["Body"].read()
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_KEY_CODES:
                raise ObjectStorageError(f"Object not found: {locator}.") from exc
            raise ObjectStorageError(f"Failed to fetch object {locator}: {code or 'unknown error'}.") from exc
        except BotoCoreError as exc:
            raise ObjectStorageError(f"Failed to fetch object {locator}.") from exc

        logger.info("Fetched s3 object bucket=%s key=%s size=%d", locator.bucket, key, len(content))
        return content

    def put(self, locator: ObjectLocator, data: bytes, *, content_type: str | None = None) -> None:
        key = locator.key.lstrip("/")
        extra_args: dict[str, Any] = {}
        if content_type:
            extra_args["ContentType"] = content_type

        try:
            self._client.put_object(Bucket=locator.bucket, Key=key, Body=data, **extra_args)
        except (ClientError, BotoCoreError) as exc:
            raise ObjectStorageError(f"Failed to write object {locator}.") from exc

        logger.info("Stored s3 object bucket=%s key=%s size=%d", locator.bucket, key, len(data))
