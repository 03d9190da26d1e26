from __future__ import annotations

import dataclasses

import pytest
from botocore.exceptions import ClientError

from ticketbooth.config import settings
from ticketbooth.errors import NotFound, StorageError, ValidationFailed
from ticketbooth.uploads import UploadSigner, build_object_key


class FakeS3:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def generate_presigned_url(self, operation, Params, ExpiresIn):
        if self.error:
            raise self.error
        self.calls.append((operation, Params, ExpiresIn))
        return f"https://storage.test/{Params['Key']}?signature=abc"


def _signer(client=None, **overrides) -> UploadSigner:
    options = {
        "storage_bucket": "event-photos",
        "storage_public_url": "https://cdn.example.com",
        "upload_url_ttl_seconds": 600,
    }
    options.update(overrides)
    signer = UploadSigner(dataclasses.replace(settings, **options))
    signer._client = client or FakeS3()
    return signer


def test_build_object_key_scopes_to_event():
    key = build_object_key("evt1", "Party.PNG")
    assert key.startswith("events/evt1/")
    assert key.endswith(".png")
    assert build_object_key("evt1", "noext").endswith(".jpg")


def test_sign_returns_presigned_put():
    client = FakeS3()
    signer = _signer(client)

    signed = signer.sign(event_id="evt1", file_name="party.jpg", file_type="image/jpeg")

    ((operation, params, expires),) = client.calls
    assert operation == "put_object"
    assert params["Bucket"] == "event-photos"
    assert params["Key"] == signed.key
    assert params["ContentType"] == "image/jpeg"
    assert expires == 600
    assert signed.upload_url.startswith("https://storage.test/events/evt1/")


def test_sign_rejects_non_images():
    with pytest.raises(ValidationFailed):
        _signer().sign(event_id="evt1", file_name="a.pdf", file_type="application/pdf")


def test_sign_requires_bucket():
    with pytest.raises(StorageError):
        _signer(storage_bucket="").sign(
            event_id="evt1", file_name="a.png", file_type="image/png"
        )


def test_sign_wraps_storage_errors():
    error = ClientError({"Error": {"Code": "AccessDenied", "Message": "no"}}, "PutObject")
    with pytest.raises(StorageError):
        _signer(FakeS3(error)).sign(
            event_id="evt1", file_name="a.png", file_type="image/png"
        )


def test_public_url_requires_event_prefix():
    signer = _signer()

    assert signer.public_url(event_id="evt1", key="events/evt1/x.png") == (
        "https://cdn.example.com/events/evt1/x.png"
    )
    with pytest.raises(NotFound):
        signer.public_url(event_id="evt1", key="events/evt2/x.png")
    with pytest.raises(NotFound):
        signer.public_url(event_id="evt1", key="events/evt1/../evt2/x.png")
