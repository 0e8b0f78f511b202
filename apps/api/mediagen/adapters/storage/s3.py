"""S3-compatible asset storage."""

from __future__ import annotations

from typing import Any
import uuid

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from mediagen.adapters.storage.base import AssetStorage, StorageError, extension_for


class S3AssetStorage(AssetStorage):
    def __init__(
        self,
        *,
        bucket: str,
        region: str | None = None,
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        url_expiry_seconds: int = 3600,
        prefix: str = "assets/",
        client: Any | None = None,
    ) -> None:
        self._bucket = bucket
        self._prefix = prefix
        self._url_expiry_seconds = url_expiry_seconds
        if client is None:
            session = boto3.session.Session(
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=region,
            )
            client = session.client(
                "s3",
                endpoint_url=endpoint_url,
                config=BotoConfig(signature_version="s3v4"),
            )
        self._client = client

    def put(self, data: bytes, content_type: str) -> str:
        asset_id = f"{uuid.uuid4().hex}{extension_for(content_type)}"
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=self._key(asset_id),
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to store asset: {exc}") from exc
        return asset_id

    def url_for(self, asset_id: str) -> str:
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self._bucket, "Key": self._key(asset_id)},
                ExpiresIn=self._url_expiry_seconds,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to sign asset URL: {exc}") from exc

    def exists(self, asset_id: str) -> bool:
        try:
            self._client.head_object(Bucket=self._bucket, Key=self._key(asset_id))
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in {"404", "NoSuchKey", "NotFound"}:
                return False
            raise StorageError(f"Failed to look up asset: {exc}") from exc
        return True

    def _key(self, asset_id: str) -> str:
        return f"{self._prefix}{asset_id}"


__all__ = ["S3AssetStorage"]
