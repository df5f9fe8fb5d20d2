"""Artifact storage backends.

Both backends overwrite on put, so deterministic keys such as
``{order_id}.pdf`` make a re-run of the pipeline idempotent.
"""

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath

from app.core.errors import InvalidArgument

logger = logging.getLogger("app.storage")


def validate_key(key: str) -> str:
    path = PurePosixPath(key)
    if not key or path.is_absolute() or ".." in path.parts or "\\" in key:
        raise InvalidArgument(f"Invalid storage key: {key!r}")
    return str(path)


def artifact_keys(order_id: str) -> dict[str, str]:
    return {"document": f"{order_id}.pdf", "bundle": f"{order_id}.zip"}


class ArtifactStore(ABC):
    @abstractmethod
    def put(self, data: bytes, key: str, content_type: str = "application/octet-stream") -> str:
        """Write ``data`` under ``key`` and return a URL for reading it."""
        raise NotImplementedError

    @abstractmethod
    def url_for(self, key: str) -> str:
        """Issue a fresh read URL for an existing key."""
        raise NotImplementedError


class LocalArtifactStore(ArtifactStore):
    """Files on local disk.

    With a ``base_url`` the directory is expected to be served statically
    (see ``/storage`` in app.main); without one the store is private and
    url_for returns a ``file://`` URI for internal use only.
    """

    def __init__(self, root: Path | str, base_url: str | None = None):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.base_url = base_url.rstrip("/") if base_url else None

    def path_for(self, key: str) -> Path:
        return self.root / validate_key(key)

    def put(self, data: bytes, key: str, content_type: str = "application/octet-stream") -> str:
        dest = self.path_for(key)
        dest.parent.mkdir(parents=True, exist_ok=True)

        # write-then-rename so readers never see a partial file
        fd, tmp = tempfile.mkstemp(dir=dest.parent, prefix=".upload-")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp, dest)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

        logger.info("stored %s (%d bytes)", key, len(data))
        return self.url_for(key)

    def url_for(self, key: str) -> str:
        key = validate_key(key)
        if self.base_url is None:
            return self.path_for(key).resolve().as_uri()
        return f"{self.base_url}/{key}"


class S3ArtifactStore(ArtifactStore):
    """S3-compatible bucket; every URL handed out is presigned and expires."""

    def __init__(self, client, bucket: str, prefix: str = "", url_ttl_seconds: int = 7 * 24 * 3600):
        self.client = client
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self.url_ttl_seconds = url_ttl_seconds

    def _object_key(self, key: str) -> str:
        key = validate_key(key)
        return f"{self.prefix}/{key}" if self.prefix else key

    def put(self, data: bytes, key: str, content_type: str = "application/octet-stream") -> str:
        object_key = self._object_key(key)
        self.client.put_object(
            Bucket=self.bucket,
            Key=object_key,
            Body=data,
            ContentType=content_type,
        )
        logger.info("uploaded s3://%s/%s (%d bytes)", self.bucket, object_key, len(data))
        return self.url_for(key)

    def url_for(self, key: str) -> str:
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": self._object_key(key)},
            ExpiresIn=self.url_ttl_seconds,
        )


def make_s3_client(settings):
    import boto3

    return boto3.client(
        "s3",
        region_name=settings.S3_REGION,
        endpoint_url=settings.S3_ENDPOINT_URL,
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
    )
