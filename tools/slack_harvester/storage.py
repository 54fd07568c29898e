"""Byte stores – local disk and MinIO/S3 key/value backends."""

from __future__ import annotations

import hashlib
import io
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Iterable, Iterator

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError

from .config import DiskConfig, HarvesterConfig, S3Config
from .mime import SNIFF_BYTES, sniff_mimetype

logger = logging.getLogger("harvester.storage")

# Chunk size for streaming reads
BUFFER_SIZE = 65536


class ByteStore(ABC):
    """Flat key/value byte storage.  Keys are ``/``-separated relative paths."""

    @abstractmethod
    def has(self, key: str) -> bool: ...

    @abstractmethod
    def read(self, key: str) -> bytes: ...

    @abstractmethod
    def write(self, key: str, data: bytes) -> None: ...

    @abstractmethod
    def write_stream(self, key: str, chunks: Iterable[bytes]) -> int:
        """Write *chunks* to *key*, returning the number of bytes written."""

    @abstractmethod
    def delete(self, key: str) -> None: ...

    @abstractmethod
    def rename(self, src: str, dst: str) -> None:
        """Move *src* to *dst*.  Raises FileExistsError if *dst* exists."""

    @abstractmethod
    def get_mimetype(self, key: str) -> str | None: ...

    @abstractmethod
    def hash(self, key: str, algorithm: str = "md5") -> str: ...

    def close(self) -> None:
        pass


# ── local disk ───────────────────────────────────────────────────


class DiskByteStore(ByteStore):
    """Store objects as files below a root directory."""

    def __init__(self, cfg: DiskConfig | None = None) -> None:
        self.cfg = cfg or DiskConfig.from_env()
        self.root = Path(self.cfg.root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if path == self.root or self.root not in path.parents:
            raise ValueError(f"Key escapes storage root: {key!r}")
        return path

    def has(self, key: str) -> bool:
        return self._path(key).is_file()

    def read(self, key: str) -> bytes:
        return self._path(key).read_bytes()

    def write(self, key: str, data: bytes) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    def write_stream(self, key: str, chunks: Iterable[bytes]) -> int:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        size = 0
        with open(path, "wb") as f:
            for chunk in chunks:
                f.write(chunk)
                size += len(chunk)
        return size

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def rename(self, src: str, dst: str) -> None:
        src_path, dst_path = self._path(src), self._path(dst)
        dst_path.parent.mkdir(parents=True, exist_ok=True)
        # link() fails with EEXIST instead of replacing a concurrent writer's file
        os.link(src_path, dst_path)
        os.unlink(src_path)

    def get_mimetype(self, key: str) -> str | None:
        with open(self._path(key), "rb") as f:
            return sniff_mimetype(f.read(SNIFF_BYTES))

    def hash(self, key: str, algorithm: str = "md5") -> str:
        hasher = hashlib.new(algorithm)
        with open(self._path(key), "rb") as f:
            for chunk in iter(lambda: f.read(BUFFER_SIZE), b""):
                hasher.update(chunk)
        return hasher.hexdigest()


# ── MinIO / S3 ───────────────────────────────────────────────────


class _ChunkReader(io.RawIOBase):
    """Expose an iterator of byte chunks as a readable file object."""

    def __init__(self, chunks: Iterable[bytes]) -> None:
        self._chunks: Iterator[bytes] = iter(chunks)
        self._pending = b""
        self.size = 0

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: Any) -> int:
        while not self._pending:
            try:
                self._pending = next(self._chunks)
            except StopIteration:
                return 0
        n = min(len(buffer), len(self._pending))
        buffer[:n] = self._pending[:n]
        self._pending = self._pending[n:]
        self.size += n
        return n


class S3ByteStore(ByteStore):
    """Store objects in a MinIO / S3 bucket."""

    _MISSING = {"404", "NoSuchKey", "NotFound"}

    def __init__(self, cfg: S3Config | None = None, *, client: Any = None) -> None:
        self.cfg = cfg or S3Config.from_env()
        self._s3 = client or boto3.client(
            "s3",
            endpoint_url=self.cfg.endpoint,
            aws_access_key_id=self.cfg.access_key,
            aws_secret_access_key=self.cfg.secret_key,
            config=BotoConfig(signature_version="s3v4"),
            use_ssl=self.cfg.use_ssl,
        )
        if client is None:
            self._ensure_bucket()

    def _ensure_bucket(self) -> None:
        try:
            self._s3.head_bucket(Bucket=self.cfg.bucket)
        except ClientError:
            self._s3.create_bucket(Bucket=self.cfg.bucket)
            logger.info("Created bucket: %s", self.cfg.bucket)

    def has(self, key: str) -> bool:
        try:
            self._s3.head_object(Bucket=self.cfg.bucket, Key=key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in self._MISSING:
                return False
            raise
        return True

    def read(self, key: str) -> bytes:
        return self._s3.get_object(Bucket=self.cfg.bucket, Key=key)["Body"].read()

    def write(self, key: str, data: bytes) -> None:
        self._s3.put_object(Bucket=self.cfg.bucket, Key=key, Body=data)

    def write_stream(self, key: str, chunks: Iterable[bytes]) -> int:
        reader = _ChunkReader(chunks)
        self._s3.upload_fileobj(io.BufferedReader(reader, BUFFER_SIZE), self.cfg.bucket, key)
        return reader.size

    def delete(self, key: str) -> None:
        self._s3.delete_object(Bucket=self.cfg.bucket, Key=key)

    def rename(self, src: str, dst: str) -> None:
        # No atomic move in S3; the existence check relies on a single writer.
        if self.has(dst):
            raise FileExistsError(dst)
        self._s3.copy_object(
            Bucket=self.cfg.bucket,
            Key=dst,
            CopySource={"Bucket": self.cfg.bucket, "Key": src},
        )
        self._s3.delete_object(Bucket=self.cfg.bucket, Key=src)

    def get_mimetype(self, key: str) -> str | None:
        try:
            resp = self._s3.get_object(
                Bucket=self.cfg.bucket, Key=key, Range=f"bytes=0-{SNIFF_BYTES - 1}"
            )
        except ClientError as exc:
            # Ranged reads of an empty object are rejected
            if exc.response.get("Error", {}).get("Code") == "InvalidRange":
                return None
            raise
        return sniff_mimetype(resp["Body"].read())

    def hash(self, key: str, algorithm: str = "md5") -> str:
        hasher = hashlib.new(algorithm)
        body = self._s3.get_object(Bucket=self.cfg.bucket, Key=key)["Body"]
        for chunk in body.iter_chunks(BUFFER_SIZE):
            hasher.update(chunk)
        return hasher.hexdigest()

    def close(self) -> None:
        self._s3.close()


def make_store(cfg: HarvesterConfig) -> ByteStore:
    """Build the byte store selected by ``cfg.storage_driver``."""
    if cfg.storage_driver == "disk":
        return DiskByteStore(cfg.disk)
    if cfg.storage_driver == "s3":
        return S3ByteStore(cfg.s3)
    raise ValueError(f"Unknown storage driver: {cfg.storage_driver!r}")
