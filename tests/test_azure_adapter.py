"""
Tests for the Azure Blob Storage adapter

The BlobServiceClient is mocked; calls still go through asyncio.to_thread
exactly as they do against the real SDK.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from azure.core.exceptions import HttpResponseError, ResourceNotFoundError

from lazy_replicator.config import AzureBlobCredentials, RetryPolicy
from lazy_replicator.exceptions import BackendError, ObjectNotFoundError
from lazy_replicator.storage.azure_blob import DELETE_BATCH_SIZE, AzureBlobAdapter

FAST_RETRY = RetryPolicy(max_attempts=2, min_wait_seconds=0, max_wait_seconds=0)


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def blob_service():
    return MagicMock()


@pytest.fixture
def blob_client(blob_service):
    return blob_service.get_blob_client.return_value


@pytest.fixture
def container_client(blob_service):
    return blob_service.get_container_client.return_value


@pytest.fixture
def adapter(blob_service):
    adapter = AzureBlobAdapter(FAST_RETRY)
    adapter.blob_service = blob_service
    adapter.default_scope = 'test-container'
    return adapter


# ── Initialization ────────────────────────────────────────────────────────────

class TestAzureInitialization:

    def test_initialize_from_connection_string(self):
        with patch("lazy_replicator.storage.azure_blob.BlobServiceClient") as service_cls:
            adapter = AzureBlobAdapter()
            adapter.initialize(AzureBlobCredentials(connection_string="UseDevelopmentStorage=true"), "photos")

        service_cls.from_connection_string.assert_called_once_with("UseDevelopmentStorage=true")
        assert adapter.is_initialized()
        assert adapter.default_scope == 'photos'

    def test_initialize_from_account_key(self):
        with patch("lazy_replicator.storage.azure_blob.BlobServiceClient") as service_cls:
            adapter = AzureBlobAdapter()
            adapter.initialize(AzureBlobCredentials(account_name="acct", account_key="key"))

        service_cls.assert_called_once_with(
            account_url="https://acct.blob.core.windows.net",
            credential={'account_name': 'acct', 'account_key': 'key'},
        )

    def test_initialize_without_account_fails(self):
        with pytest.raises(BackendError):
            AzureBlobAdapter().initialize(AzureBlobCredentials(account_key="key"))


# ── Presence ──────────────────────────────────────────────────────────────────

class TestAzureExists:

    @pytest.mark.asyncio
    async def test_exists(self, adapter, blob_service, blob_client):
        assert await adapter.exists("photo.jpg") is True
        blob_service.get_blob_client.assert_called_once_with(container='test-container', blob='photo.jpg')

    @pytest.mark.asyncio
    async def test_missing_is_false(self, adapter, blob_client):
        blob_client.get_blob_properties.side_effect = ResourceNotFoundError("The specified blob does not exist")
        assert await adapter.exists("photo.jpg") is False
        assert blob_client.get_blob_properties.call_count == 1

    @pytest.mark.asyncio
    async def test_transport_failure_is_retried_then_raised(self, adapter, blob_client):
        blob_client.get_blob_properties.side_effect = HttpResponseError(message="Server busy")
        with pytest.raises(BackendError) as exc_info:
            await adapter.exists("photo.jpg")
        assert exc_info.value.backend == 'azure'
        assert blob_client.get_blob_properties.call_count == FAST_RETRY.max_attempts


# ── Listing ───────────────────────────────────────────────────────────────────

class TestAzureList:

    @pytest.mark.asyncio
    async def test_list(self, adapter, container_client):
        container_client.list_blobs.return_value = [
            SimpleNamespace(name="test_1.jpg", size=10, last_modified=None, etag='"0x8D"'),
            SimpleNamespace(name="test_2.jpg", size=20, last_modified=None, etag=None),
        ]

        entries = await adapter.list("test_")

        assert [entry.name for entry in entries] == ["test_1.jpg", "test_2.jpg"]
        assert entries[0].etag == '0x8D'
        container_client.list_blobs.assert_called_once_with(name_starts_with="test_")

    @pytest.mark.asyncio
    async def test_list_failure(self, adapter, container_client):
        container_client.list_blobs.side_effect = HttpResponseError(message="Forbidden")
        with pytest.raises(BackendError):
            await adapter.list()


# ── Reads ─────────────────────────────────────────────────────────────────────

class TestAzureFetch:

    @pytest.mark.asyncio
    async def test_fetch(self, adapter, blob_client):
        blob_client.download_blob.return_value.readall.return_value = b"blob bytes"
        assert await adapter.fetch("photo.jpg") == b"blob bytes"

    @pytest.mark.asyncio
    async def test_fetch_missing(self, adapter, blob_client):
        blob_client.download_blob.side_effect = ResourceNotFoundError("gone")
        with pytest.raises(ObjectNotFoundError):
            await adapter.fetch("photo.jpg")
        assert blob_client.download_blob.call_count == 1

    @pytest.mark.asyncio
    async def test_fetch_to_path(self, adapter, blob_client, tmp_path):
        blob_client.download_blob.return_value.readinto.side_effect = lambda f: f.write(b"blob bytes")
        destination = tmp_path / "out.jpg"

        await adapter.fetch_to_path("photo.jpg", destination)

        assert destination.read_bytes() == b"blob bytes"

    @pytest.mark.asyncio
    async def test_fetch_to_path_missing_leaves_no_file(self, adapter, blob_client, tmp_path):
        blob_client.download_blob.side_effect = ResourceNotFoundError("gone")
        destination = tmp_path / "out.jpg"

        with pytest.raises(ObjectNotFoundError):
            await adapter.fetch_to_path("photo.jpg", destination)
        assert not destination.exists()


# ── Writes ────────────────────────────────────────────────────────────────────

class TestAzureStore:

    @pytest.mark.asyncio
    async def test_store_overwrites_with_content_type(self, adapter, blob_client, source_file):
        await adapter.store(source_file, "photo.jpg")

        _, kwargs = blob_client.upload_blob.call_args
        assert kwargs['overwrite'] is True
        assert kwargs['content_settings'].content_type == 'image/jpeg'

    @pytest.mark.asyncio
    async def test_store_missing_source(self, adapter, blob_client, tmp_path):
        with pytest.raises(FileNotFoundError):
            await adapter.store(tmp_path / "nope.jpg", "photo.jpg")
        blob_client.upload_blob.assert_not_called()

    @pytest.mark.asyncio
    async def test_store_missing_container_is_backend_error(self, adapter, blob_client, source_file):
        """Not-found on upload means the container is missing, not the object"""
        blob_client.upload_blob.side_effect = ResourceNotFoundError("ContainerNotFound")
        with pytest.raises(BackendError) as exc_info:
            await adapter.store(source_file, "photo.jpg")
        assert not isinstance(exc_info.value, ObjectNotFoundError)

    @pytest.mark.asyncio
    async def test_delete_missing_container_is_backend_error(self, adapter, container_client):
        container_client.delete_blobs.side_effect = ResourceNotFoundError("ContainerNotFound")
        with pytest.raises(BackendError) as exc_info:
            await adapter.delete_many(["a.txt"])
        assert not isinstance(exc_info.value, ObjectNotFoundError)

    @pytest.mark.asyncio
    async def test_store_failure(self, adapter, blob_client, source_file):
        blob_client.upload_blob.side_effect = HttpResponseError(message="Forbidden")
        with pytest.raises(BackendError, match="upload"):
            await adapter.store(source_file, "photo.jpg")


# ── Deletes ───────────────────────────────────────────────────────────────────

class TestAzureDelete:

    @pytest.mark.asyncio
    async def test_already_absent_blobs_are_not_errors(self, adapter, container_client):
        container_client.delete_blobs.return_value = [
            SimpleNamespace(status_code=202),
            SimpleNamespace(status_code=404),
        ]
        await adapter.delete_many(["a.txt", "b.txt"])
        container_client.delete_blobs.assert_called_once_with("a.txt", "b.txt", raise_on_any_failure=False)

    @pytest.mark.asyncio
    async def test_failed_sub_request_raises(self, adapter, container_client):
        container_client.delete_blobs.return_value = [
            SimpleNamespace(status_code=202),
            SimpleNamespace(status_code=403),
        ]
        with pytest.raises(BackendError, match="b.txt") as exc_info:
            await adapter.delete_many(["a.txt", "b.txt"])
        assert exc_info.value.path == "b.txt"

    @pytest.mark.asyncio
    async def test_delete_batches(self, adapter, container_client):
        container_client.delete_blobs.side_effect = lambda *names, **kwargs: [
            SimpleNamespace(status_code=202) for _ in names
        ]
        await adapter.delete_many([f"obj_{i}" for i in range(DELETE_BATCH_SIZE + 1)])
        assert container_client.delete_blobs.call_count == 2

    @pytest.mark.asyncio
    async def test_delete_nothing(self, adapter, container_client):
        await adapter.delete_many([])
        container_client.delete_blobs.assert_not_called()
