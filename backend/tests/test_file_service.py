"""
Per-User File Operations Test Suite

Tests for backend/user_files/services/file_service.py covering:
- Upload key derivation, ACL handling and metadata entries
- Download without metadata access
- Delete with absent, present and last entries
- Sync reconciliation, placeholder skipping and failure isolation
- The documented lost update between concurrent operations
"""

import asyncio

from datetime import UTC, datetime
from unittest.mock import Mock

import pytest

from botocore.exceptions import ClientError
from pymongo.errors import AutoReconnect, PyMongoError

from user_files.core.metadata import MetadataStore
from user_files.models.file_entry import FileEntry
from user_files.services.file_service import UserFileService


HREF = "https://service/v1/accounts/xyz123"
BASE = "https://s3.amazonaws.com/bucket/"


def _client_error(code: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, "Operation")


async def _seed(metadata_store: MetadataStore, *names: str) -> None:
    record = await metadata_store.get_record(HREF)
    files = record.ensure_files()
    for name in names:
        files[name] = FileEntry(
            href=f"{BASE}xyz123/{name}", last_modified=datetime(2023, 6, 1, tzinfo=UTC)
        )
    await record.save()


# =============================================================================
# Upload
# =============================================================================


class TestUploadFile:
    """Test suite for UserFileService.upload_file."""

    @pytest.mark.asyncio
    async def test_upload_derives_key_and_href(
        self, file_service: UserFileService, mock_storage: Mock, fake_collection
    ) -> None:
        before = datetime.now(UTC)

        entry = await file_service.upload_file("/tmp/avatar.png")

        mock_storage.upload_file.assert_awaited_once_with(
            "/tmp/avatar.png", "xyz123/avatar.png", "private"
        )
        assert entry.href == "https://s3.amazonaws.com/bucket/xyz123/avatar.png"
        assert before <= entry.last_modified <= datetime.now(UTC)

        stored = fake_collection.stored_files(HREF)
        assert stored["avatar.png"]["href"] == entry.href

    @pytest.mark.asyncio
    async def test_explicit_acl(self, file_service: UserFileService, mock_storage: Mock) -> None:
        await file_service.upload_file("/tmp/avatar.png", acl="public-read")

        mock_storage.upload_file.assert_awaited_once_with(
            "/tmp/avatar.png", "xyz123/avatar.png", "public-read"
        )

    @pytest.mark.asyncio
    async def test_configured_default_acl(
        self, mock_storage: Mock, metadata_store: MetadataStore
    ) -> None:
        service = UserFileService(mock_storage, metadata_store, HREF, default_acl="authenticated-read")

        await service.upload_file("/tmp/avatar.png")

        assert mock_storage.upload_file.await_args.args[2] == "authenticated-read"

    @pytest.mark.asyncio
    async def test_reupload_replaces_entry(
        self, file_service: UserFileService, fake_collection
    ) -> None:
        first = await file_service.upload_file("/data/one/report.pdf")
        second = await file_service.upload_file("/data/two/report.pdf")

        stored = fake_collection.stored_files(HREF)
        assert list(stored) == ["report.pdf"]
        assert stored["report.pdf"]["last_modified"] == second.last_modified
        assert second.last_modified >= first.last_modified

    @pytest.mark.asyncio
    async def test_upload_keeps_other_entries(
        self, file_service: UserFileService, metadata_store: MetadataStore, fake_collection
    ) -> None:
        await _seed(metadata_store, "old.txt")

        await file_service.upload_file("/tmp/new.txt")

        assert set(fake_collection.stored_files(HREF)) == {"old.txt", "new.txt"}

    @pytest.mark.asyncio
    async def test_transfer_error_leaves_metadata_untouched(
        self, file_service: UserFileService, mock_storage: Mock, fake_collection
    ) -> None:
        error = _client_error("AccessDenied")
        mock_storage.upload_file.side_effect = error

        with pytest.raises(ClientError) as exc_info:
            await file_service.upload_file("/tmp/avatar.png")

        assert exc_info.value is error
        assert fake_collection.find_one_calls == []
        assert fake_collection.replace_one_calls == []

    @pytest.mark.asyncio
    async def test_missing_local_file_raises(
        self, file_service: UserFileService, mock_storage: Mock, fake_collection
    ) -> None:
        mock_storage.upload_file.side_effect = FileNotFoundError("/tmp/nope.txt")

        with pytest.raises(FileNotFoundError):
            await file_service.upload_file("/tmp/nope.txt")

        assert fake_collection.replace_one_calls == []

    @pytest.mark.asyncio
    async def test_save_error_propagates_after_transfer(
        self, file_service: UserFileService, mock_storage: Mock, fake_collection
    ) -> None:
        fake_collection.replace_errors["avatar.png"] = AutoReconnect("connection reset")

        with pytest.raises(PyMongoError):
            await file_service.upload_file("/tmp/avatar.png")

        mock_storage.upload_file.assert_awaited_once()
        assert HREF not in fake_collection.documents


# =============================================================================
# Download
# =============================================================================


class TestDownloadFile:
    """Test suite for UserFileService.download_file."""

    @pytest.mark.asyncio
    async def test_download_uses_namespaced_key(
        self, file_service: UserFileService, mock_storage: Mock, fake_collection
    ) -> None:
        await file_service.download_file("avatar.png", "/tmp/out.png")

        mock_storage.download_file.assert_awaited_once_with("xyz123/avatar.png", "/tmp/out.png")
        assert fake_collection.find_one_calls == []
        assert fake_collection.replace_one_calls == []

    @pytest.mark.asyncio
    async def test_download_error_propagates(
        self, file_service: UserFileService, mock_storage: Mock
    ) -> None:
        mock_storage.download_file.side_effect = _client_error("404")

        with pytest.raises(ClientError):
            await file_service.download_file("missing.png", "/tmp/out.png")


# =============================================================================
# Delete
# =============================================================================


class TestDeleteFile:
    """Test suite for UserFileService.delete_file."""

    @pytest.mark.asyncio
    async def test_delete_without_files_mapping_skips_save(
        self, file_service: UserFileService, mock_storage: Mock, fake_collection
    ) -> None:
        await file_service.delete_file("avatar.png")

        mock_storage.delete_objects.assert_awaited_once_with(["xyz123/avatar.png"], quiet=True)
        assert len(fake_collection.find_one_calls) == 1
        assert fake_collection.replace_one_calls == []

    @pytest.mark.asyncio
    async def test_delete_removes_only_named_entry(
        self, file_service: UserFileService, metadata_store: MetadataStore, fake_collection
    ) -> None:
        await _seed(metadata_store, "a.txt", "b.txt")

        await file_service.delete_file("a.txt")

        assert list(fake_collection.stored_files(HREF)) == ["b.txt"]

    @pytest.mark.asyncio
    async def test_delete_last_entry_leaves_empty_mapping(
        self, file_service: UserFileService, metadata_store: MetadataStore, fake_collection
    ) -> None:
        await _seed(metadata_store, "a.txt")

        await file_service.delete_file("a.txt")

        assert fake_collection.stored_files(HREF) == {}
        record = await metadata_store.get_record(HREF)
        assert record.files == {}

    @pytest.mark.asyncio
    async def test_delete_unknown_name_still_saves(
        self, file_service: UserFileService, metadata_store: MetadataStore, fake_collection
    ) -> None:
        await _seed(metadata_store, "a.txt")
        saves_before = len(fake_collection.replace_one_calls)

        await file_service.delete_file("zzz.txt")

        assert len(fake_collection.replace_one_calls) == saves_before + 1
        assert list(fake_collection.stored_files(HREF)) == ["a.txt"]

    @pytest.mark.asyncio
    async def test_delete_request_error_skips_metadata(
        self, file_service: UserFileService, mock_storage: Mock, fake_collection
    ) -> None:
        mock_storage.delete_objects.side_effect = _client_error("AccessDenied")

        with pytest.raises(ClientError):
            await file_service.delete_file("a.txt")

        assert fake_collection.find_one_calls == []


# =============================================================================
# Sync
# =============================================================================


class TestSyncFiles:
    """Test suite for UserFileService.sync_files."""

    @pytest.mark.asyncio
    async def test_sync_records_listed_objects(
        self,
        file_service: UserFileService,
        mock_storage: Mock,
        fake_collection,
        make_listing,
        make_object,
    ) -> None:
        mock_storage.iter_object_pages = make_listing(
            [make_object("xyz123/", 1), make_object("xyz123/a.txt", 2)],
            [make_object("xyz123/b.txt", 3)],
        )

        reconciled = await file_service.sync_files()

        mock_storage.iter_object_pages.assert_called_once_with("xyz123/")
        assert reconciled == 2
        stored = fake_collection.stored_files(HREF)
        assert set(stored) == {"a.txt", "b.txt"}
        assert stored["a.txt"]["href"] == f"{BASE}xyz123/a.txt"
        assert stored["a.txt"]["last_modified"] == datetime(2024, 1, 2, 12, 0, tzinfo=UTC)
        assert stored["b.txt"]["last_modified"] == datetime(2024, 1, 3, 12, 0, tzinfo=UTC)

    @pytest.mark.asyncio
    async def test_sync_skips_directory_placeholder(
        self, file_service: UserFileService, mock_storage: Mock, fake_collection, make_listing, make_object
    ) -> None:
        mock_storage.iter_object_pages = make_listing([make_object("xyz123/")])

        reconciled = await file_service.sync_files()

        assert reconciled == 0
        assert fake_collection.replace_one_calls == []

    @pytest.mark.asyncio
    async def test_sync_skips_nested_folder_placeholders(
        self, file_service: UserFileService, mock_storage: Mock, fake_collection, make_listing, make_object
    ) -> None:
        mock_storage.iter_object_pages = make_listing(
            [make_object("xyz123/sub/"), make_object("xyz123/sub/c.txt"), make_object("xyz123/a.txt")]
        )

        reconciled = await file_service.sync_files()

        assert reconciled == 2
        assert set(fake_collection.stored_files(HREF)) == {"sub/c.txt", "a.txt"}

    @pytest.mark.asyncio
    async def test_sync_keeps_entries_missing_from_storage(
        self,
        file_service: UserFileService,
        metadata_store: MetadataStore,
        mock_storage: Mock,
        fake_collection,
        make_listing,
        make_object,
    ) -> None:
        await _seed(metadata_store, "gone.txt")
        mock_storage.iter_object_pages = make_listing([make_object("xyz123/a.txt")])

        await file_service.sync_files()

        assert set(fake_collection.stored_files(HREF)) == {"gone.txt", "a.txt"}

    @pytest.mark.asyncio
    async def test_sync_of_many_objects_loses_no_entries(
        self, file_service: UserFileService, mock_storage: Mock, fake_collection, make_listing, make_object
    ) -> None:
        names = [f"file-{i}.bin" for i in range(12)]
        mock_storage.iter_object_pages = make_listing(
            [make_object(f"xyz123/{name}") for name in names[:5]],
            [make_object(f"xyz123/{name}") for name in names[5:]],
        )

        reconciled = await file_service.sync_files()

        assert reconciled == 12
        assert set(fake_collection.stored_files(HREF)) == set(names)

    @pytest.mark.asyncio
    async def test_sync_failure_does_not_stop_others(
        self,
        file_service: UserFileService,
        mock_storage: Mock,
        fake_collection,
        make_listing,
        make_object,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        fake_collection.replace_errors["b.txt"] = AutoReconnect("connection reset")
        mock_storage.iter_object_pages = make_listing(
            [
                make_object("xyz123/a.txt"),
                make_object("xyz123/b.txt"),
                make_object("xyz123/c.txt"),
            ]
        )

        reconciled = await file_service.sync_files()

        assert reconciled == 2
        assert set(fake_collection.stored_files(HREF)) == {"a.txt", "c.txt"}
        assert "Failed to reconcile file metadata" in caplog.text

    @pytest.mark.asyncio
    async def test_listing_error_raised_after_started_tasks_finish(
        self, file_service: UserFileService, mock_storage: Mock, fake_collection, make_listing, make_object
    ) -> None:
        error = _client_error("InternalError")
        mock_storage.iter_object_pages = make_listing(
            [make_object("xyz123/a.txt"), make_object("xyz123/b.txt")], error=error
        )

        with pytest.raises(ClientError) as exc_info:
            await file_service.sync_files()

        assert exc_info.value is error
        assert set(fake_collection.stored_files(HREF)) == {"a.txt", "b.txt"}

    @pytest.mark.asyncio
    async def test_empty_listing(self, file_service: UserFileService, fake_collection) -> None:
        assert await file_service.sync_files() == 0
        assert fake_collection.find_one_calls == []


# =============================================================================
# Listing and Concurrency
# =============================================================================


class TestListAndConcurrency:
    """Test suite for list_files and cross-call behavior."""

    @pytest.mark.asyncio
    async def test_list_files_empty(self, file_service: UserFileService) -> None:
        assert await file_service.list_files() == {}

    @pytest.mark.asyncio
    async def test_list_files_after_upload(self, file_service: UserFileService) -> None:
        await file_service.upload_file("/tmp/a.txt")

        files = await file_service.list_files()

        assert list(files) == ["a.txt"]

    @pytest.mark.asyncio
    async def test_concurrent_uploads_lose_an_update(
        self, file_service: UserFileService, fake_collection
    ) -> None:
        """Whole-record saves are last-write-wins across separate calls."""
        await asyncio.gather(
            file_service.upload_file("/tmp/a.txt"),
            file_service.upload_file("/tmp/b.txt"),
        )

        stored = fake_collection.stored_files(HREF)
        assert len(stored) == 1
        assert set(stored) < {"a.txt", "b.txt"}

    @pytest.mark.asyncio
    async def test_sequential_uploads_keep_both(
        self, file_service: UserFileService, fake_collection
    ) -> None:
        await file_service.upload_file("/tmp/a.txt")
        await file_service.upload_file("/tmp/b.txt")

        assert set(fake_collection.stored_files(HREF)) == {"a.txt", "b.txt"}
