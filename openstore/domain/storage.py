# openstore/domain/storage.py
import os
import shutil
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote, unquote

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from ..core.config import get_settings


class BlobStoreError(Exception):
    """Raised when a blob cannot be written or removed."""


# ---------------------------------------------------------
# Base class (must come first!)
# ---------------------------------------------------------
class BlobStore:
    def put(self, key: str, file_path: str) -> str:
        """Upload a file and return its public URL."""
        raise NotImplementedError

    def delete(self, key: str) -> None:
        """Remove a blob; missing blobs are not an error."""
        raise NotImplementedError

    def url_for(self, key: str) -> str:
        raise NotImplementedError

    def key_for(self, url: str) -> str | None:
        """Inverse of url_for(); None when the URL does not belong to this store."""
        raise NotImplementedError


# ---------------------------------------------------------
# Local filesystem implementation
# ---------------------------------------------------------
@dataclass
class LocalBlobStore(BlobStore):
    root: str
    base_url: str

    def put(self, key: str, file_path: str) -> str:
        dst = os.path.join(self.root, key)
        try:
            os.makedirs(os.path.dirname(dst), exist_ok=True)
            # copy to a sibling then rename so readers never see a partial file
            partial = dst + ".partial"
            shutil.copyfile(file_path, partial)
            os.replace(partial, dst)
        except OSError as e:
            raise BlobStoreError(f"could not store {key}: {e}") from e
        return self.url_for(key)

    def delete(self, key: str) -> None:
        try:
            os.remove(os.path.join(self.root, key))
        except FileNotFoundError:
            pass
        except OSError as e:
            raise BlobStoreError(f"could not delete {key}: {e}") from e

    def get_path(self, key: str) -> str:
        return os.path.join(self.root, key)

    def url_for(self, key: str) -> str:
        return f"{self.base_url.rstrip('/')}/{quote(key)}"

    def key_for(self, url: str) -> str | None:
        prefix = self.base_url.rstrip("/") + "/"
        if not url.startswith(prefix):
            return None
        return unquote(url[len(prefix):])


# ---------------------------------------------------------
# AWS S3 implementation
# ---------------------------------------------------------
@dataclass
class S3BlobStore(BlobStore):
    bucket: str
    region: str | None = None
    prefix: str = ""
    public_url: str = ""
    client: Any = field(default=None, repr=False)

    def __post_init__(self):
        if self.client is None:
            self.client = boto3.client("s3", region_name=self.region)
        if not self.public_url:
            self.public_url = f"https://{self.bucket}.s3.{self.region}.amazonaws.com"

    def _object_key(self, key: str) -> str:
        return f"{self.prefix.strip('/')}/{key}" if self.prefix else key

    def put(self, key: str, file_path: str) -> str:
        try:
            self.client.upload_file(file_path, self.bucket, self._object_key(key))
        except (BotoCoreError, ClientError) as e:
            raise BlobStoreError(f"could not upload {key} to s3://{self.bucket}: {e}") from e
        return self.url_for(key)

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=self._object_key(key))
        except (BotoCoreError, ClientError) as e:
            raise BlobStoreError(f"could not delete {key} from s3://{self.bucket}: {e}") from e

    def url_for(self, key: str) -> str:
        return f"{self.public_url.rstrip('/')}/{quote(self._object_key(key))}"

    def key_for(self, url: str) -> str | None:
        prefix = self.public_url.rstrip("/") + "/"
        if not url.startswith(prefix):
            return None
        object_key = unquote(url[len(prefix):])
        if self.prefix:
            head = self.prefix.strip("/") + "/"
            if not object_key.startswith(head):
                return None
            object_key = object_key[len(head):]
        return object_key


# ---------------------------------------------------------
# Factory / global getter
# ---------------------------------------------------------
_blob_instance: BlobStore | None = None

def get_blob_store() -> BlobStore:
    """Return the active blob store instance (local or S3)."""
    global _blob_instance
    if _blob_instance:
        return _blob_instance

    s = get_settings()
    if s.STORAGE_BACKEND == "local":
        os.makedirs(s.BLOB_ROOT, exist_ok=True)
        _blob_instance = LocalBlobStore(s.BLOB_ROOT, s.BLOB_BASE_URL)
    elif s.STORAGE_BACKEND == "s3":
        if not s.S3_BUCKET:
            raise RuntimeError("S3 backend selected but S3_BUCKET is not set")
        _blob_instance = S3BlobStore(
            bucket=s.S3_BUCKET,
            region=s.AWS_REGION,
            prefix=s.S3_PREFIX,
            public_url=s.S3_PUBLIC_URL,
        )
    else:
        raise NotImplementedError(f"Unknown STORAGE_BACKEND={s.STORAGE_BACKEND}")
    logger.info("Using {} blob store", s.STORAGE_BACKEND)
    return _blob_instance


def reset_blob_store() -> None:
    global _blob_instance
    _blob_instance = None
