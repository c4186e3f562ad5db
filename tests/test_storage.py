"""Tests for document stores, blob storage and upload routing."""

from __future__ import annotations

import asyncio
import re
from datetime import datetime, timedelta, timezone

import pytest

from catalog_exchange.core.config import ExchangeSettings
from catalog_exchange.core.errors import StorageError, ValidationError
from catalog_exchange.storage.blobs import BlobStorage, LocalBlobStorage
from catalog_exchange.storage.documents import DocumentStore, InMemoryDocumentStore, open_document_store
from catalog_exchange.storage.router import (
    EMPTY_FILENAME,
    MISSING_BODY,
    Namespace,
    StorageRouter,
    choose_destination,
    generation_timestamp,
    namespaces_from_settings,
)

TIMESTAMP_RE = r"\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2}-\d{3}\+0000"


class _SlowBlobs(LocalBlobStorage):
    async def write(self, bucket, remote_path, data):
        await asyncio.sleep(1)


class _BrokenBlobs(LocalBlobStorage):
    async def write(self, bucket, remote_path, data):
        raise PermissionError("read-only filesystem")


class _UnavailableBlobs(LocalBlobStorage):
    async def write(self, bucket, remote_path, data):
        raise RuntimeError("bucket backend 503")


@pytest.fixture
def router(blobs, settings) -> StorageRouter:
    return StorageRouter(blobs, namespaces_from_settings(settings), timeout=1.0)


# -------------------------------------------------------------------------
# Document store
# -------------------------------------------------------------------------


class TestInMemoryDocumentStore:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(InMemoryDocumentStore(), DocumentStore)

    def test_set_get_delete(self) -> None:
        store = InMemoryDocumentStore()
        asyncio.run(store.set("c", "k", {"a": 1}))
        assert asyncio.run(store.get("c", "k")) == {"a": 1}
        asyncio.run(store.delete("c", "k"))
        assert asyncio.run(store.get("c", "k")) is None

    def test_delete_missing_is_noop(self) -> None:
        asyncio.run(InMemoryDocumentStore().delete("c", "missing"))

    def test_collections_are_separate(self) -> None:
        store = InMemoryDocumentStore()
        asyncio.run(store.set("one", "k", {"v": 1}))
        assert asyncio.run(store.get("two", "k")) is None

    def test_keys_expiring_by(self) -> None:
        store = InMemoryDocumentStore()
        now = datetime.now(timezone.utc)
        asyncio.run(store.set("c", "past", {"exp": (now - timedelta(seconds=1)).isoformat()}))
        asyncio.run(store.set("c", "exact", {"exp": now.isoformat()}))
        asyncio.run(store.set("c", "future", {"exp": (now + timedelta(hours=1)).isoformat()}))
        asyncio.run(store.set("c", "garbage", {"exp": "not-a-date"}))
        asyncio.run(store.set("other", "past", {"exp": (now - timedelta(days=1)).isoformat()}))

        keys = asyncio.run(store.keys_expiring_by("c", "exp", now))
        assert sorted(keys) == ["exact", "past"]

    def test_open_without_url_is_in_memory(self) -> None:
        store = asyncio.run(open_document_store(""))
        assert isinstance(store, InMemoryDocumentStore)


# -------------------------------------------------------------------------
# Blob storage
# -------------------------------------------------------------------------


class TestLocalBlobStorage:
    def test_satisfies_protocol(self, blobs) -> None:
        assert isinstance(blobs, BlobStorage)

    def test_write_and_read(self, blobs) -> None:
        asyncio.run(blobs.write("bucket", "a/b/c.xml", b"<xml/>"))
        assert (blobs.root / "bucket" / "a" / "b" / "c.xml").read_bytes() == b"<xml/>"
        assert asyncio.run(blobs.read("bucket", "a/b/c.xml")) == b"<xml/>"

    def test_overwrite_replaces_content(self, blobs) -> None:
        asyncio.run(blobs.write("bucket", "f.xml", b"one"))
        asyncio.run(blobs.write("bucket", "f.xml", b"two"))
        assert asyncio.run(blobs.read("bucket", "f.xml")) == b"two"
        assert [p.name for p in (blobs.root / "bucket").iterdir()] == ["f.xml"]

    def test_failed_replace_leaves_no_temp_file(self, blobs, monkeypatch) -> None:
        def refuse(src, dst):
            raise PermissionError("target is locked")

        monkeypatch.setattr("catalog_exchange.storage.blobs.os.replace", refuse)
        with pytest.raises(PermissionError):
            asyncio.run(blobs.write("bucket", "locked.xml", b"x"))
        assert list((blobs.root / "bucket").iterdir()) == []

    def test_leading_slash_stays_inside_bucket(self, blobs) -> None:
        asyncio.run(blobs.write("bucket", "/rooted.xml", b"x"))
        assert (blobs.root / "bucket" / "rooted.xml").exists()

    def test_path_escaping_bucket_rejected(self, blobs) -> None:
        with pytest.raises(ValueError, match="escapes"):
            asyncio.run(blobs.write("bucket", "../other/evil.xml", b"x"))


# -------------------------------------------------------------------------
# Routing
# -------------------------------------------------------------------------


class TestDestination:
    def test_generation_timestamp_format(self) -> None:
        moment = datetime(2026, 10, 17, 9, 30, 5, 42_000, tzinfo=timezone.utc)
        assert generation_timestamp(moment) == "2026-10-17_09-30-05-042+0000"

    def test_generation_timestamps_sort_chronologically(self) -> None:
        early = generation_timestamp(datetime(2026, 1, 2, 3, 4, 5, 6_000, tzinfo=timezone.utc))
        late = generation_timestamp(datetime(2026, 1, 2, 3, 4, 5, 7_000, tzinfo=timezone.utc))
        assert early < late

    def test_catalog_import_files_keep_folder(self) -> None:
        ns = namespaces_from_settings(ExchangeSettings())["catalog"]
        dest = choose_destination(ns, "import_files/orders/order1.xml")
        assert dest.bucket == "1c-exchange-files"
        assert dest.remote_path == "import_files/orders/order1.xml"

    def test_catalog_root_file_gets_timestamp(self) -> None:
        ns = namespaces_from_settings(ExchangeSettings())["catalog"]
        moment = datetime(2026, 10, 17, 9, 30, 5, tzinfo=timezone.utc)
        dest = choose_destination(ns, "import.xml", now=moment)
        assert dest.bucket == "1c-exchange-catalog"
        assert dest.remote_path == "2026-10-17_09-30-05-000+0000_import.xml"

    def test_report_root_file_has_no_timestamp(self) -> None:
        ns = namespaces_from_settings(ExchangeSettings())["report"]
        dest = choose_destination(ns, "report1.xml")
        assert dest.bucket == "1c-exchange-report"
        assert dest.remote_path == "report1.xml"

    def test_report_import_files_keep_folder(self) -> None:
        ns = namespaces_from_settings(ExchangeSettings())["report"]
        dest = choose_destination(ns, "import_files/ab/cd.png")
        assert dest.bucket == "1c-exchange-report"
        assert dest.remote_path == "import_files/ab/cd.png"

    def test_bucket_names_follow_settings(self) -> None:
        settings = ExchangeSettings(catalog_bucket="cat", catalog_files_bucket="files", report_bucket="rep")
        namespaces = namespaces_from_settings(settings)
        assert namespaces["catalog"] == Namespace("files", "cat", True)
        assert namespaces["report"] == Namespace("rep", "rep", False)


class TestStorageRouter:
    def test_catalog_import_file_written_under_folder(self, router, blobs) -> None:
        result = asyncio.run(router.route("catalog", "import_files/orders/order1.xml", b"<order/>"))
        assert result == "success"
        written = blobs.root / "1c-exchange-files" / "import_files" / "orders" / "order1.xml"
        assert written.read_bytes() == b"<order/>"

    def test_catalog_root_file_written_with_prefix(self, router, blobs) -> None:
        asyncio.run(router.route("catalog", "import.xml", b"<catalog/>"))
        names = [p.name for p in (blobs.root / "1c-exchange-catalog").iterdir()]
        assert len(names) == 1
        assert re.fullmatch(TIMESTAMP_RE + "_import\\.xml", names[0])

    def test_report_root_file_written_plain(self, router, blobs) -> None:
        asyncio.run(router.route("report", "report1.xml", b"<report/>"))
        assert (blobs.root / "1c-exchange-report" / "report1.xml").read_bytes() == b"<report/>"

    def test_empty_body_is_accepted(self, router, blobs) -> None:
        asyncio.run(router.route("report", "empty.xml", b""))
        assert (blobs.root / "1c-exchange-report" / "empty.xml").read_bytes() == b""

    @pytest.mark.parametrize("filename", ["", None])
    def test_empty_filename(self, router, filename) -> None:
        with pytest.raises(ValidationError, match=EMPTY_FILENAME):
            asyncio.run(router.route("catalog", filename, b"data"))

    def test_missing_body(self, router) -> None:
        with pytest.raises(ValidationError, match=MISSING_BODY):
            asyncio.run(router.route("catalog", "import.xml", None))

    def test_unknown_type(self, router) -> None:
        with pytest.raises(ValidationError):
            asyncio.run(router.route("orders", "import.xml", b"x"))

    def test_traversal_is_validation_error(self, router) -> None:
        with pytest.raises(ValidationError, match="not allowed"):
            asyncio.run(router.route("report", "../../etc/passwd", b"x"))

    def test_write_timeout_is_storage_error(self, settings, tmp_path) -> None:
        router = StorageRouter(_SlowBlobs(tmp_path), namespaces_from_settings(settings), timeout=0.05)
        with pytest.raises(StorageError, match="timed out"):
            asyncio.run(router.route("report", "slow.xml", b"x"))

    def test_write_failure_is_storage_error(self, settings, tmp_path) -> None:
        router = StorageRouter(_BrokenBlobs(tmp_path), namespaces_from_settings(settings))
        with pytest.raises(StorageError, match="read-only"):
            asyncio.run(router.route("report", "f.xml", b"x"))

    def test_unexpected_backend_error_is_storage_error(self, settings, tmp_path) -> None:
        router = StorageRouter(_UnavailableBlobs(tmp_path), namespaces_from_settings(settings))
        with pytest.raises(StorageError, match="bucket backend 503"):
            asyncio.run(router.route("catalog", "import.xml", b"x"))

    def test_concurrent_uploads_of_one_path(self, router, blobs) -> None:
        payloads = [f"<picture {i}/>".encode() for i in range(40)]

        async def upload_all():
            return await asyncio.gather(*(
                router.route("catalog", "import_files/a/pic.jpg", payload) for payload in payloads
            ))

        assert asyncio.run(upload_all()) == ["success"] * len(payloads)
        folder = blobs.root / "1c-exchange-files" / "import_files" / "a"
        assert [p.name for p in folder.iterdir()] == ["pic.jpg"]
        assert (folder / "pic.jpg").read_bytes() in payloads
