"""Tests for the write-once, content-addressed store."""

import hashlib
import os

import pytest

from slack_harvester.cas import (
    ContentAddressedStore,
    IngestOutcome,
    StagingHandle,
    new_staging_handle,
)
from slack_harvester.errors import ExtensionUnknown, MimeUnknown
from slack_harvester.storage import DiskByteStore


class CountingStore(DiskByteStore):
    """Disk store that counts hash calls and can refuse pointer writes."""

    def __init__(self, cfg, *, fail_pointer_writes=False):
        super().__init__(cfg)
        self.hash_calls = 0
        self.fail_pointer_writes = fail_pointer_writes

    def hash(self, key, algorithm="md5"):
        self.hash_calls += 1
        return super().hash(key, algorithm)

    def write(self, key, data):
        if self.fail_pointer_writes and key.startswith("hash/"):
            raise OSError("disk full")
        super().write(key, data)


def stage(cas, data, handle=None):
    return cas.write_staged(iter([data]), handle)


class TestPrimitives:
    def test_write_staged_uses_single_slot(self, cas, png_bytes, gif_bytes):
        first = stage(cas, png_bytes)
        second = stage(cas, gif_bytes)
        assert first == second == StagingHandle("tmp")
        assert cas.store.read("tmp") == gif_bytes

    def test_private_staging_slots_are_distinct(self):
        assert new_staging_handle() != new_staging_handle()

    def test_sniff_unknown_raises(self, cas):
        handle = stage(cas, b"plain text body")
        with pytest.raises(MimeUnknown):
            cas.sniff_mime_type(handle)

    def test_commit_refuses_existing_key(self, cas, png_bytes):
        cas.store.write("media/a.png", b"old")
        handle = stage(cas, png_bytes)
        assert cas.commit(handle, "media/a.png") is False
        assert cas.store.read("media/a.png") == b"old"

    def test_commit_loses_race_to_concurrent_writer(self, cas, png_bytes, monkeypatch):
        real_link = os.link

        def link_after_concurrent_write(src, dst):
            with open(dst, "wb") as f:
                f.write(b"other")
            real_link(src, dst)

        monkeypatch.setattr("slack_harvester.storage.os.link", link_after_concurrent_write)
        handle = stage(cas, png_bytes)
        assert cas.commit(handle, "media/a.png") is False
        assert cas.store.read("media/a.png") == b"other"
        assert cas.store.read(handle.key) == png_bytes

    def test_failed_stream_leaves_no_staged_bytes(self, cas):
        def broken():
            yield b"partial"
            raise ConnectionError("dropped")

        with pytest.raises(ConnectionError):
            cas.write_staged(broken())
        assert not cas.has("tmp")


class TestIngest:
    def test_stores_under_logical_and_content_keys(self, cas, png_bytes):
        result = cas.ingest(stage(cas, png_bytes), "2017-07-14--02-40-00")

        digest = hashlib.md5(png_bytes).hexdigest()
        assert result.outcome is IngestOutcome.STORED
        assert result.stored
        assert result.logical_key == "media/2017-07-14--02-40-00.png"
        assert result.content_key == f"hash/{digest}"
        assert cas.store.read("media/2017-07-14--02-40-00.png") == png_bytes
        assert cas.lookup(digest) == "media/2017-07-14--02-40-00.png"
        assert not cas.has("tmp")

    def test_existing_logical_key_short_circuits_before_hashing(self, tmp_path, png_bytes):
        from slack_harvester.config import DiskConfig

        cas = ContentAddressedStore(CountingStore(DiskConfig(root=str(tmp_path))))
        cas.ingest(stage(cas, png_bytes), "same-name")
        assert cas.store.hash_calls == 1

        result = cas.ingest(stage(cas, png_bytes), "same-name")
        assert result.outcome is IngestOutcome.EXISTS
        assert cas.store.hash_calls == 1
        assert not cas.has("tmp")

    def test_identical_bytes_under_new_name_are_deduplicated(self, cas, png_bytes):
        cas.ingest(stage(cas, png_bytes), "first")
        result = cas.ingest(stage(cas, png_bytes), "second")

        assert result.outcome is IngestOutcome.DUPLICATE
        assert not cas.has("media/second.png")
        assert cas.has("media/first.png")
        assert not cas.has("tmp")

    def test_logical_key_is_never_overwritten(self, cas, png_bytes, other_png_bytes):
        cas.ingest(stage(cas, png_bytes), "name")
        result = cas.ingest(stage(cas, other_png_bytes), "name")

        assert result.outcome is IngestOutcome.EXISTS
        assert cas.store.read("media/name.png") == png_bytes

    def test_unknown_mimetype_discards_staged_bytes(self, cas):
        with pytest.raises(MimeUnknown):
            cas.ingest(stage(cas, b"<html>login page</html>"), "name")
        assert not cas.has("tmp")

    def test_unmapped_mimetype_raises_extension_unknown(self, cas):
        with pytest.raises(ExtensionUnknown) as excinfo:
            cas.ingest(stage(cas, b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n" + b"0" * 64), "doc")
        assert excinfo.value.mimetype == "application/pdf"
        assert not cas.has("tmp")

    def test_pointer_failure_keeps_file(self, tmp_path, png_bytes):
        from slack_harvester.config import DiskConfig

        store = CountingStore(DiskConfig(root=str(tmp_path)), fail_pointer_writes=True)
        cas = ContentAddressedStore(store)
        result = cas.ingest(stage(cas, png_bytes), "name")

        assert result.outcome is IngestOutcome.STORED
        assert cas.has("media/name.png")
        assert cas.lookup(hashlib.md5(png_bytes).hexdigest()) is None

    def test_every_pointer_references_a_stored_file(self, cas, png_bytes, other_png_bytes, gif_bytes):
        for name, data in [("a", png_bytes), ("b", other_png_bytes), ("c", gif_bytes), ("d", png_bytes)]:
            cas.ingest(stage(cas, data), name)

        pointers = sorted(p for p in (cas.store.root / "hash").iterdir())
        assert len(pointers) == 3
        for pointer in pointers:
            assert cas.has(pointer.read_bytes().decode())

    def test_private_slot_ingest(self, cas, png_bytes):
        handle = stage(cas, png_bytes, new_staging_handle())
        result = cas.ingest(handle, "parallel")
        assert result.stored
        assert not cas.has(handle.key)
