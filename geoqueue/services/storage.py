import logging
import os
import shutil
import uuid
from dataclasses import dataclass
from typing import BinaryIO, Optional

import boto3
from botocore.client import Config as BotoConfig
from flask import current_app

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    ".stl": "model/stl",
    ".3mf": "model/3mf",
    ".obj": "text/plain",
    ".gcode": "text/plain",
}


@dataclass(frozen=True)
class BlobRef:
    url: str
    pathname: str
    content_type: str
    size: int


@dataclass(frozen=True)
class InlineFile:
    """File bytes kept on the row itself (legacy base64 results)."""
    filename: str
    data: bytes


@dataclass(frozen=True)
class RemoteFile:
    """File persisted in the blob store; the row only keeps the pointer."""
    filename: str
    ref: BlobRef


StoredFile = InlineFile | RemoteFile


def content_type_for(filename: str) -> str:
    ext = os.path.splitext(filename or "")[1].lower()
    return CONTENT_TYPES.get(ext, "application/octet-stream")


def build_blob_key(filename: str) -> str:
    # Clave única por subida (evita colisiones)
    base = os.path.basename((filename or "").replace("\\", "/")) or "file.bin"
    stem, ext = os.path.splitext(base)
    uid = uuid.uuid4().hex[:12]
    return f"results/{stem}-{uid}{ext.lower()}"


class StorageBase:
    def upload_stream(self, stream: BinaryIO, filename: str) -> BlobRef:
        raise NotImplementedError

    def read(self, pathname: str) -> bytes:
        raise NotImplementedError

    def signed_url(self, pathname: str, expires_in: int = 3600) -> Optional[str]:
        """Time-limited URL for direct download, or None if the backend cannot sign."""
        return None

    def delete(self, pathname: str) -> None:
        raise NotImplementedError


def _safe_join(*parts: str) -> str:
    return "/".join([p.strip("/").replace("\\", "/") for p in parts if p])


class LocalStorage(StorageBase):
    def __init__(self, base_dir: str = ".blob-storage"):
        self.base_dir = base_dir

    def _path_for(self, pathname: str) -> str:
        path = os.path.normpath(os.path.join(self.base_dir, pathname))
        root = os.path.normpath(self.base_dir)
        if os.path.commonpath([root, path]) != root:
            raise ValueError(f"invalid blob pathname: {pathname}")
        return path

    def _ref(self, key: str, filename: str) -> BlobRef:
        path = self._path_for(key)
        return BlobRef(
            url=path,
            pathname=key,
            content_type=content_type_for(filename),
            size=os.path.getsize(path),
        )

    def upload_stream(self, stream: BinaryIO, filename: str) -> BlobRef:
        key = build_blob_key(filename)
        path = self._path_for(key)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            shutil.copyfileobj(stream, f)
        return self._ref(key, filename)

    def read(self, pathname: str) -> bytes:
        with open(self._path_for(pathname), "rb") as f:
            return f.read()

    def delete(self, pathname: str) -> None:
        path = self._path_for(pathname)
        if os.path.exists(path):
            os.remove(path)


class R2Storage(StorageBase):
    def __init__(self):
        cfg = current_app.config
        self.bucket = cfg["R2_BUCKET"]
        self.public_base = cfg.get("R2_PUBLIC_BASE_URL")  # opcional

        self.s3 = boto3.client(
            "s3",
            endpoint_url=cfg["R2_ENDPOINT"],
            aws_access_key_id=cfg["R2_ACCESS_KEY"],
            aws_secret_access_key=cfg["R2_SECRET_KEY"],
            config=BotoConfig(signature_version="s3v4"),
            region_name="auto",
        )

    def upload_stream(self, stream: BinaryIO, filename: str) -> BlobRef:
        key = build_blob_key(filename)
        content_type = content_type_for(filename)
        self.s3.upload_fileobj(
            stream,
            self.bucket,
            key,
            ExtraArgs={"ContentType": content_type},
        )
        head = self.s3.head_object(Bucket=self.bucket, Key=key)
        return BlobRef(
            url=self._url_for(key),
            pathname=key,
            content_type=content_type,
            size=int(head.get("ContentLength", 0)),
        )

    def read(self, pathname: str) -> bytes:
        obj = self.s3.get_object(Bucket=self.bucket, Key=pathname)
        return obj["Body"].read()

    def signed_url(self, pathname: str, expires_in: int = 3600) -> Optional[str]:
        return self.s3.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": pathname},
            ExpiresIn=expires_in,
        )

    def delete(self, pathname: str) -> None:
        self.s3.delete_object(Bucket=self.bucket, Key=pathname)

    def _url_for(self, key: str) -> str:
        if self.public_base:
            return _safe_join(self.public_base, key)
        return f"s3://{self.bucket}/{key}"


def get_storage() -> StorageBase:
    provider = (current_app.config.get("STORAGE_PROVIDER") or "local").lower()
    if provider == "r2":
        return R2Storage()
    return LocalStorage(current_app.config.get("LOCAL_STORAGE_DIR") or ".blob-storage")


def store_result_file(storage: StorageBase, filestorage) -> RemoteFile:
    """Streams an uploaded werkzeug FileStorage into the blob store."""
    filename = os.path.basename((filestorage.filename or "").replace("\\", "/")) or "file.bin"
    ref = storage.upload_stream(filestorage.stream, filename)
    return RemoteFile(filename=filename, ref=ref)


def discard_files(storage: StorageBase, files: dict) -> None:
    """Best-effort removal of blobs whose result never got recorded."""
    for slot, stored in files.items():
        if not isinstance(stored, RemoteFile):
            continue
        try:
            storage.delete(stored.ref.pathname)
        except Exception:
            logger.exception("Could not delete orphaned %s blob %s", slot, stored.ref.pathname)
        else:
            logger.warning("Deleted orphaned %s blob %s", slot, stored.ref.pathname)
