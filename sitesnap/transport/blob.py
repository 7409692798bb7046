# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap Blob Store - Push and pull archives to S3-compatible storage.

An upload only counts once the store reports the object exists. Nothing is
retried: a failure is reported and the caller leaves the catalog alone.
"""

from pathlib import Path
from typing import Any, Mapping

import aiofiles
import structlog

from sitesnap.errors import explain_missing_credential
from sitesnap.exceptions import RemoteError, ValidationError

logger = structlog.get_logger()

# Settings each storage service needs before push/pull
SERVICE_SETTINGS = {
    "aws": ("key", "secret", "region", "bucket_name"),
}
OPTIONAL_SETTINGS = {
    "aws": ("endpoint_url",),
}

DOWNLOAD_CHUNK_SIZE = 1024 * 1024


def required_settings(service: str) -> tuple:
    """
    Get the setting names a storage service requires.

    Raises:
        ValidationError: If the service is unknown
    """
    try:
        return SERVICE_SETTINGS[service]
    except KeyError:
        raise ValidationError(
            f"Unsupported storage service: {service}",
            details={"supported": sorted(SERVICE_SETTINGS)},
        )


def optional_settings(service: str) -> tuple:
    """Get the setting names a storage service accepts but does not need."""
    required_settings(service)
    return OPTIONAL_SETTINGS.get(service, ())


class BlobStore:
    """Archive transfers against one bucket."""

    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        access_key: str | None = None,
        secret_key: str | None = None,
        endpoint_url: str | None = None,
        session: Any = None,
    ):
        self.bucket = bucket
        self.region = region
        self._access_key = access_key
        self._secret_key = secret_key
        self._endpoint_url = endpoint_url
        self._session = session

    @classmethod
    def from_credentials(cls, service: str, credentials: Mapping[str, str]) -> "BlobStore":
        """
        Build a store from settings saved by `configure`.

        Raises:
            ValidationError: If a required setting is missing
        """
        for key in required_settings(service):
            if not credentials.get(key):
                raise ValidationError(
                    explain_missing_credential(service, key),
                    details={"service": service, "missing": key},
                )

        return cls(
            bucket=credentials["bucket_name"],
            region=credentials["region"],
            access_key=credentials["key"],
            secret_key=credentials["secret"],
            endpoint_url=credentials.get("endpoint_url") or None,
        )

    def _client(self):
        if self._session is None:
            from aiobotocore.session import get_session

            self._session = get_session()

        return self._session.create_client(
            "s3",
            region_name=self.region,
            aws_access_key_id=self._access_key,
            aws_secret_access_key=self._secret_key,
            endpoint_url=self._endpoint_url,
        )

    async def put_blob(self, local_path: Path, key: str | None = None) -> bool:
        """
        Upload a file and confirm the object exists afterwards.

        Args:
            local_path: Archive to upload
            key: Object key (default: the file name)

        Returns:
            True if the store confirms the object, False otherwise

        Raises:
            RemoteError: If the upload call itself fails
        """
        local_path = Path(local_path)
        key = key or local_path.name

        async with aiofiles.open(local_path, "rb") as f:
            content = await f.read()

        async with self._client() as s3_client:
            try:
                await s3_client.put_object(Bucket=self.bucket, Key=key, Body=content)
            except Exception as e:
                raise RemoteError(
                    f"Upload failed: {e}",
                    details={"bucket": self.bucket, "key": key},
                ) from e

            try:
                response = await s3_client.head_object(Bucket=self.bucket, Key=key)
            except Exception as e:
                logger.error("blob_upload_unconfirmed", bucket=self.bucket, key=key, error=str(e))
                return False

        remote_size = response.get("ContentLength")
        if remote_size is not None and remote_size != len(content):
            logger.error(
                "blob_upload_size_mismatch",
                bucket=self.bucket,
                key=key,
                expected=len(content),
                actual=remote_size,
            )
            return False

        logger.info("blob_uploaded", bucket=self.bucket, key=key, size=len(content))
        return True

    async def get_blob(self, key: str, local_path: Path) -> bool:
        """
        Download an object to a local file.

        A partially written file is removed when the download fails.

        Returns:
            True on success, False if the object could not be fetched
        """
        local_path = Path(local_path)

        try:
            async with self._client() as s3_client:
                response = await s3_client.get_object(Bucket=self.bucket, Key=key)
                async with response["Body"] as stream:
                    async with aiofiles.open(local_path, "wb") as f:
                        while True:
                            chunk = await stream.read(DOWNLOAD_CHUNK_SIZE)
                            if not chunk:
                                break
                            await f.write(chunk)
        except Exception as e:
            logger.error("blob_download_failed", bucket=self.bucket, key=key, error=str(e))
            local_path.unlink(missing_ok=True)
            return False

        logger.info(
            "blob_downloaded",
            bucket=self.bucket,
            key=key,
            path=str(local_path),
            size=local_path.stat().st_size,
        )
        return True
