"""Presigned uploads to S3-compatible object storage."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import Settings
from .errors import NotFound, StorageError, ValidationFailed
from .schemas import ALLOWED_IMAGE_TYPES

logger = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class SignedUpload:
    upload_url: str
    key: str


def event_prefix(event_id: str) -> str:
    return f"events/{event_id}/"


def build_object_key(event_id: str, file_name: str) -> str:
    extension = file_name.rsplit(".", 1)[-1].lower() if "." in file_name else "jpg"
    return f"{event_prefix(event_id)}{uuid.uuid4()}.{extension}"


class UploadSigner:
    def __init__(self, settings: Settings):
        self.settings = settings
        self._client = None

    @property
    def client(self):
        if self._client is None:
            options = {
                "aws_access_key_id": self.settings.storage_access_key_id or None,
                "aws_secret_access_key": self.settings.storage_secret_access_key or None,
                "region_name": self.settings.storage_region,
            }
            if self.settings.storage_endpoint_url:
                options["endpoint_url"] = self.settings.storage_endpoint_url
            self._client = boto3.client("s3", **options)
        return self._client

    def sign(self, *, event_id: str, file_name: str, file_type: str) -> SignedUpload:
        """Return a presigned PUT URL for a new image under the event's prefix."""
        if file_type.lower() not in ALLOWED_IMAGE_TYPES:
            raise ValidationFailed(
                "Invalid file type. Only images are allowed.",
                details=[{"field": "file_type", "message": "Unsupported image type"}],
            )
        if not self.settings.storage_bucket:
            raise StorageError("Object storage is not configured")
        key = build_object_key(event_id, file_name)
        try:
            url = self.client.generate_presigned_url(
                "put_object",
                Params={
                    "Bucket": self.settings.storage_bucket,
                    "Key": key,
                    "ContentType": file_type,
                },
                ExpiresIn=self.settings.upload_url_ttl_seconds,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("Failed to presign upload for event %s: %s", event_id, exc)
            raise StorageError() from exc
        logger.info("Signed upload %s", key)
        return SignedUpload(upload_url=url, key=key)

    def public_url(self, *, event_id: str, key: str) -> str:
        """Return the public URL for an uploaded key, which must belong to the event."""
        if not key.startswith(event_prefix(event_id)) or ".." in key:
            raise NotFound("Upload not found")
        return f"{self.settings.storage_public_url}/{key}"
