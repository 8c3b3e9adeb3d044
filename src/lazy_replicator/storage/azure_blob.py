"""
Azure Blob Storage adapter (backend A)
"""

import asyncio
import logging
from pathlib import Path
from typing import Iterable, List, Optional

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.storage.blob import BlobServiceClient, ContentSettings

from ..config import AzureBlobCredentials, RetryPolicy
from ..exceptions import BackendError, ObjectNotFoundError, ReplicatorError
from .base import ObjectEntry, PathLike, StorageAdapter, guess_content_type, remove_partial_file

logger = logging.getLogger(__name__)

# Blob batch requests accept at most 256 sub-requests
DELETE_BATCH_SIZE = 256


class AzureBlobAdapter(StorageAdapter):
    """Azure Blob Storage adapter"""

    name = 'azure'

    def __init__(self, retry_policy: Optional[RetryPolicy] = None):
        super().__init__(retry_policy)
        self.blob_service: Optional[BlobServiceClient] = None

    @property
    def scope_kind(self) -> str:
        return 'container'

    def initialize(self, credentials: AzureBlobCredentials, default_container_name: Optional[str] = None) -> None:
        """Create the blob service client used for every subsequent call"""
        if credentials.connection_string:
            self.blob_service = BlobServiceClient.from_connection_string(credentials.connection_string)
        else:
            account_url = credentials.resolved_account_url
            if not account_url:
                raise BackendError("Azure Blob Storage needs an account name or URL", backend=self.name)
            self.blob_service = BlobServiceClient(
                account_url=account_url,
                credential={
                    'account_name': credentials.account_name,
                    'account_key': credentials.account_key,
                } if credentials.account_name else credentials.account_key,
            )
        self.default_scope = default_container_name
        logger.info(f"Initialized Azure Blob adapter for {self.blob_service.account_name}")

    def is_initialized(self) -> bool:
        return self.blob_service is not None

    def _blob(self, container: str, path: str):
        if self.blob_service is None:
            raise BackendError("Azure Blob adapter is not initialized", backend=self.name)
        return self.blob_service.get_blob_client(container=container, blob=path)

    def _container(self, container: str):
        if self.blob_service is None:
            raise BackendError("Azure Blob adapter is not initialized", backend=self.name)
        return self.blob_service.get_container_client(container)

    def _wrap(self, error: Exception, action: str, path: Optional[str]) -> BackendError:
        return BackendError(f"Azure {action} failed for {path}: {error}", backend=self.name, path=path)

    def _wrap_read(self, error: Exception, action: str, path: str) -> ReplicatorError:
        """Map a blob read error; ResourceNotFoundError here means the blob itself is missing"""
        if isinstance(error, ResourceNotFoundError):
            return ObjectNotFoundError(path, backend=self.name)
        return self._wrap(error, action, path)

    async def exists(self, path: str, scope: Optional[str] = None) -> bool:
        blob_client = self._blob(self._scope(scope), path)

        async def _properties():
            try:
                await asyncio.to_thread(blob_client.get_blob_properties)
                return True
            except ResourceNotFoundError:
                return False
            except AzureError as e:
                raise self._wrap(e, 'properties', path) from e

        return await self._call(_properties)

    async def list(self, prefix: str = '', scope: Optional[str] = None) -> List[ObjectEntry]:
        container_client = self._container(self._scope(scope))

        async def _list():
            try:
                blobs = await asyncio.to_thread(
                    lambda: list(container_client.list_blobs(name_starts_with=prefix or None))
                )
            except AzureError as e:
                raise self._wrap(e, 'list', prefix) from e
            return [
                ObjectEntry(
                    name=blob.name,
                    size=blob.size,
                    last_modified=blob.last_modified.isoformat() if blob.last_modified else None,
                    etag=(blob.etag or '').strip('"') or None,
                )
                for blob in blobs
            ]

        return await self._call(_list)

    async def fetch(self, path: str, scope: Optional[str] = None) -> bytes:
        blob_client = self._blob(self._scope(scope), path)

        async def _download():
            try:
                downloader = await asyncio.to_thread(blob_client.download_blob)
                return await asyncio.to_thread(downloader.readall)
            except AzureError as e:
                raise self._wrap_read(e, 'download', path) from e

        return await self._call(_download)

    async def fetch_to_path(self, path: str, destination: PathLike, scope: Optional[str] = None) -> None:
        container = self._scope(scope)
        blob_client = self._blob(container, path)

        def _download_to_file():
            with open(destination, 'wb') as file:
                blob_client.download_blob().readinto(file)

        async def _download():
            try:
                await asyncio.to_thread(_download_to_file)
            except AzureError as e:
                remove_partial_file(destination)
                raise self._wrap_read(e, 'download', path) from e
            logger.info(
                f"Downloaded azure://{container}/{path} to {destination}",
                extra={'operation': 'download', 'backend': self.name, 'path': path, 'scope': container}
            )

        await self._call(_download)

    async def store(
        self,
        source: PathLike,
        path: str,
        scope: Optional[str] = None,
        content_type: Optional[str] = None
    ) -> None:
        container = self._scope(scope)
        blob_client = self._blob(container, path)
        content_settings = ContentSettings(content_type=content_type or guess_content_type(source))

        def _upload_file():
            with open(source, 'rb') as data:
                blob_client.upload_blob(data, overwrite=True, content_settings=content_settings)

        async def _upload():
            try:
                await asyncio.to_thread(_upload_file)
            except AzureError as e:
                raise self._wrap(e, 'upload', path) from e
            logger.info(
                f"Uploaded {source} to azure://{container}/{path}",
                extra={'operation': 'upload', 'backend': self.name, 'path': path, 'scope': container}
            )

        if not Path(source).is_file():
            raise FileNotFoundError(f"Local source not found: {source}")
        await self._call(_upload)

    async def delete_many(self, paths: Iterable[str], scope: Optional[str] = None) -> None:
        container = self._scope(scope)
        container_client = self._container(container)
        names = list(paths)
        if not names:
            return

        async def _delete():
            for start in range(0, len(names), DELETE_BATCH_SIZE):
                batch = names[start:start + DELETE_BATCH_SIZE]
                try:
                    responses = await asyncio.to_thread(
                        lambda: list(container_client.delete_blobs(*batch, raise_on_any_failure=False))
                    )
                except AzureError as e:
                    raise self._wrap(e, 'delete', batch[0]) from e
                # 404 means the blob is already gone
                failed = [
                    (name, response.status_code)
                    for name, response in zip(batch, responses)
                    if response.status_code >= 300 and response.status_code != 404
                ]
                if failed:
                    name, status = failed[0]
                    raise BackendError(
                        f"Azure delete failed for {len(failed)} blob(s), first {name}: HTTP {status}",
                        backend=self.name,
                        path=name,
                    )
            logger.info(
                f"Deleted {len(names)} blob(s) from azure://{container}",
                extra={'operation': 'delete', 'backend': self.name, 'scope': container}
            )

        await self._call(_delete)
