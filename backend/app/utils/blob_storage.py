"""
Media storage for image and audio messages.

Clients send media as base64 data URIs. With a bucket configured the bytes are
uploaded to S3 and the message keeps the public URL; without one the payload
is stored inline as received.

Note: boto3 is imported lazily so the inline backend works without AWS
configuration.
"""

import base64
import binascii
import logging
import re
import uuid
from typing import Optional, Protocol, Tuple

import anyio

from app.services.exceptions import UpstreamError, ValidationError


logger = logging.getLogger(__name__)

_DATA_URI = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[\w=.-]+)*;base64,(?P<data>.*)$", re.DOTALL)

_DEFAULT_MIME = {"image": "image/png", "audio": "audio/mpeg"}


class BlobStorage(Protocol):

    enabled: bool

    async def upload(self, payload: str, kind: str) -> str: ...


def decode_data_uri(payload: str, kind: str) -> Tuple[bytes, str]:
    match = _DATA_URI.match(payload)
    if not match:
        raise ValidationError(f"{kind} payload must be a base64 data URI")
    try:
        data = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError(f"{kind} payload is not valid base64") from exc
    return data, match.group("mime") or _DEFAULT_MIME.get(kind, "application/octet-stream")


class InlineBlobStorage:

    enabled = False

    async def upload(self, payload: str, kind: str) -> str:
        return payload


class S3BlobStorage:

    enabled = True

    def __init__(self, bucket_name: str, prefix: str = "chat-media", public_base_url: Optional[str] = None) -> None:
        self.bucket_name = bucket_name
        self.prefix = prefix.strip("/")
        self.public_base_url = public_base_url or f"https://{bucket_name}.s3.amazonaws.com"
        self._s3_client = None

    @property
    def s3_client(self):
        """Get or create S3 client."""
        if self._s3_client is None:
            import boto3

            self._s3_client = boto3.client("s3")
        return self._s3_client

    async def upload(self, payload: str, kind: str) -> str:
        if payload.startswith(("http://", "https://")):
            return payload
        data, mime_type = decode_data_uri(payload, kind)
        extension = mime_type.rsplit("/", 1)[-1]
        key = f"{self.prefix}/{kind}/{uuid.uuid4().hex}.{extension}"

        def _put() -> None:
            self.s3_client.put_object(Bucket=self.bucket_name, Key=key, Body=data, ContentType=mime_type)

        try:
            await anyio.to_thread.run_sync(_put)
        except Exception as exc:
            logger.exception("Upload of %s to s3://%s/%s failed", kind, self.bucket_name, key)
            raise UpstreamError(f"Failed to upload {kind}: {exc}") from exc
        return f"{self.public_base_url.rstrip('/')}/{key}"


def create_blob_storage(bucket_name: Optional[str], prefix: str = "chat-media", public_base_url: Optional[str] = None) -> BlobStorage:
    if not bucket_name:
        return InlineBlobStorage()
    return S3BlobStorage(bucket_name, prefix=prefix, public_base_url=public_base_url)
