"""Content-addressed, write-once media store on top of a :class:`ByteStore`.

Every stored file is addressed twice:

  • ``media/<filename>.<ext>``  – the logical key holding the bytes
  • ``hash/<md5>``              – a pointer whose value is the logical key

Downloads land in a staging slot first because neither the extension nor the
hash is known until the bytes are on hand.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from botocore.exceptions import BotoCoreError, ClientError

from .errors import MediaError, MimeUnknown
from .mime import resolve_extension
from .storage import ByteStore

logger = logging.getLogger("harvester.cas")

STAGING_KEY = "tmp"
MEDIA_PREFIX = "media"
HASH_PREFIX = "hash"
HASH_ALGORITHM = "md5"


@dataclass(frozen=True)
class StagingHandle:
    key: str = STAGING_KEY


def new_staging_handle() -> StagingHandle:
    """A private staging slot, for callers with more than one download in flight."""
    return StagingHandle(key=f"staging/{uuid.uuid4().hex}")


class IngestOutcome(str, Enum):
    STORED = "stored"          # new file committed
    EXISTS = "exists"          # logical key already present
    DUPLICATE = "duplicate"    # same bytes stored under another logical key


@dataclass(frozen=True)
class IngestResult:
    outcome: IngestOutcome
    logical_key: str
    content_key: str | None = None

    @property
    def stored(self) -> bool:
        return self.outcome is IngestOutcome.STORED


class ContentAddressedStore:
    def __init__(self, store: ByteStore) -> None:
        self.store = store

    # ── keys ─────────────────────────────────────────────────────

    @staticmethod
    def logical_key(filename: str, ext: str) -> str:
        return f"{MEDIA_PREFIX}/{filename}.{ext}"

    @staticmethod
    def content_key(digest: str) -> str:
        return f"{HASH_PREFIX}/{digest}"

    # ── primitives ───────────────────────────────────────────────

    def has(self, key: str) -> bool:
        return self.store.has(key)

    def write_staged(
        self, chunks: Iterable[bytes], handle: StagingHandle | None = None
    ) -> StagingHandle:
        """Stream *chunks* into a staging slot, replacing whatever was there."""
        handle = handle or StagingHandle()
        self.discard(handle)
        try:
            size = self.store.write_stream(handle.key, chunks)
        except BaseException:
            self.discard(handle)
            raise
        logger.debug("Staged %d bytes at %s", size, handle.key)
        return handle

    def sniff_mime_type(self, handle: StagingHandle) -> str:
        mimetype = self.store.get_mimetype(handle.key)
        if not mimetype:
            raise MimeUnknown(handle.key)
        return mimetype

    def hash(self, handle: StagingHandle, algorithm: str = HASH_ALGORITHM) -> str:
        return self.store.hash(handle.key, algorithm)

    def commit(self, handle: StagingHandle, logical_key: str) -> bool:
        """Move staged bytes to *logical_key*.  False if the key is already taken."""
        try:
            self.store.rename(handle.key, logical_key)
        except FileExistsError:
            return False
        return True

    def record_content_pointer(self, content_key: str, logical_key: str) -> None:
        self.store.write(content_key, logical_key.encode("utf-8"))

    def discard(self, handle: StagingHandle) -> None:
        if self.store.has(handle.key):
            self.store.delete(handle.key)

    def lookup(self, digest: str) -> str | None:
        """Return the logical key holding content with this hash, if any."""
        key = self.content_key(digest)
        if not self.store.has(key):
            return None
        return self.store.read(key).decode("utf-8")

    def close(self) -> None:
        self.store.close()

    # ── write-once protocol ──────────────────────────────────────

    def ingest(self, handle: StagingHandle, filename: str) -> IngestResult:
        """Give staged bytes their final identity, storing them at most once.

        The logical key is checked before hashing, so a re-run that rebuilds
        the same filename never reads the payload a second time.  Raises
        :class:`MimeUnknown` / :class:`ExtensionUnknown`; the staging slot is
        emptied on every path except a successful commit.
        """
        try:
            mimetype = self.sniff_mime_type(handle)
            ext = resolve_extension(mimetype)
        except MediaError:
            self.discard(handle)
            raise

        logical_key = self.logical_key(filename, ext)
        if self.has(logical_key):
            self.discard(handle)
            return IngestResult(IngestOutcome.EXISTS, logical_key)

        content_key = self.content_key(self.hash(handle))
        if self.has(content_key):
            self.discard(handle)
            return IngestResult(IngestOutcome.DUPLICATE, logical_key, content_key)

        if not self.commit(handle, logical_key):
            self.discard(handle)
            return IngestResult(IngestOutcome.EXISTS, logical_key, content_key)

        try:
            self.record_content_pointer(content_key, logical_key)
        except (OSError, BotoCoreError, ClientError) as exc:
            # The file is safe under its logical key; only hash dedup is lost.
            logger.warning("Failed to record %s -> %s: %s", content_key, logical_key, exc)
        return IngestResult(IngestOutcome.STORED, logical_key, content_key)
