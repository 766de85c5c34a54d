import logging
import mimetypes
import uuid
from dataclasses import dataclass
from pathlib import Path

import boto3
from botocore.config import Config
from fastapi import UploadFile

from advoqat.config import (
    MAX_UPLOAD_SIZE, S3_ACCESS_KEY_ID, S3_BUCKET_NAME, S3_ENDPOINT_URL,
    S3_PUBLIC_BASE_URL, S3_SECRET_ACCESS_KEY
)
from advoqat.errors import UpstreamError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {
    '.pdf', '.doc', '.docx', '.txt', '.rtf',
    '.jpg', '.jpeg', '.png'
}


@dataclass
class FilePayload:
    filename: str
    content_type: str
    content: bytes

    @property
    def extension(self) -> str:
        return Path(self.filename).suffix.lower()

    @property
    def size(self) -> int:
        return len(self.content)


async def read_upload(file: UploadFile) -> FilePayload:
    """Read an incoming multipart file into memory and validate it."""
    if not file or not file.filename:
        raise ValidationError("No file provided")
    content = await file.read()
    content_type = file.content_type or mimetypes.guess_type(file.filename)[0] or 'application/octet-stream'
    payload = FilePayload(filename=file.filename, content_type=content_type, content=content)
    validate_file(payload)
    return payload


def validate_file(payload: FilePayload):
    if payload.extension not in ALLOWED_EXTENSIONS:
        raise ValidationError(
            f"File type not allowed. Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
        )
    if payload.size == 0:
        raise ValidationError("Uploaded file is empty")
    if payload.size > MAX_UPLOAD_SIZE:
        raise ValidationError(f"File too large. Maximum size is {MAX_UPLOAD_SIZE // (1024 * 1024)}MB")


class ObjectStorage:
    """S3-compatible bucket holding case and onboarding documents."""

    def __init__(self, bucket: str = S3_BUCKET_NAME, public_base_url: str = S3_PUBLIC_BASE_URL):
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")
        self._client = None

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                endpoint_url=S3_ENDPOINT_URL,
                aws_access_key_id=S3_ACCESS_KEY_ID,
                aws_secret_access_key=S3_SECRET_ACCESS_KEY,
                config=Config(signature_version="s3v4", connect_timeout=10, read_timeout=30),
            )
        return self._client

    def url_for(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        return f"s3://{self.bucket}/{key}"

    def upload(self, payload: FilePayload, folder: str) -> str:
        """Store ``payload`` under ``folder`` and return its URL."""
        key = f"{folder}/{uuid.uuid4()}{payload.extension}"
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=payload.content,
                ContentType=payload.content_type,
            )
        except Exception as e:
            logger.error(f"Upload of {payload.filename} to {key} failed: {e}")
            raise UpstreamError(f"Document storage failed: {e}") from e
        logger.info(f"Stored {payload.filename} ({payload.size} bytes) at {key}")
        return self.url_for(key)


def get_storage() -> ObjectStorage:
    return ObjectStorage()
