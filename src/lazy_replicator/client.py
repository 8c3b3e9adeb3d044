"""
Multi Storage Client

Keeps Azure Blob Storage and AWS S3 loosely consistent through lazy
replication: an object found in only one backend is copied to the other when
it is read, and writes/deletes are fanned out to both backends concurrently
with best-effort partial-failure semantics.
"""

import asyncio
import logging
from contextlib import nullcontext
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Dict, Iterable, List, Optional

from prometheus_client import CollectorRegistry

from .config import AzureBlobCredentials, ReplicatorConfig, RetryPolicy, S3Credentials
from .exceptions import (
    IndeterminateStateError,
    NotInitializedError,
    ObjectNotFoundError,
    PartialReplicationError,
    ReplicatorError,
)
from .location import StorageLocation
from .metrics import ReplicatorMetrics
from .scopes import ResolvedScopes, ScopeDefaults, resolve_scopes
from .storage.azure_blob import AzureBlobAdapter
from .storage.base import ObjectEntry, PathLike, StorageAdapter, guess_content_type
from .storage.s3 import S3Adapter


@dataclass
class ReplicationResult:
    """Outcome of a replicating read"""
    source: StorageLocation
    replicated_to: StorageLocation = StorageLocation.NONE

    @property
    def replicated(self) -> bool:
        return not self.replicated_to.is_empty


class MultiStorageClient:
    """
    Replication coordinator over two storage backends

    Holds one adapter per backend and no other state between calls: every
    operation re-derives presence by probing both backends.
    """

    def __init__(
        self,
        azure_adapter: Optional[StorageAdapter] = None,
        s3_adapter: Optional[StorageAdapter] = None,
        logger: Optional[logging.Logger] = None,
        registry: Optional[CollectorRegistry] = None
    ):
        self.azure = azure_adapter
        self.s3 = s3_adapter
        self.logger = logger or logging.getLogger(__name__)

        # Metrics
        self.registry = registry
        self.metrics = ReplicatorMetrics(registry) if registry else None

    @classmethod
    def from_config(
        cls,
        config: ReplicatorConfig,
        logger: Optional[logging.Logger] = None,
        registry: Optional[CollectorRegistry] = None
    ) -> "MultiStorageClient":
        client = cls(logger=logger, registry=registry)
        client.initialize(
            config.azure,
            config.s3,
            default_container_name=config.default_container_name,
            default_bucket_name=config.default_bucket_name,
            retry_policy=config.retry,
        )
        return client

    def initialize(
        self,
        azure_credentials: AzureBlobCredentials,
        s3_credentials: S3Credentials,
        default_container_name: Optional[str] = None,
        default_bucket_name: Optional[str] = None,
        retry_policy: Optional[RetryPolicy] = None
    ) -> None:
        """Create and initialize both backend adapters"""
        azure = AzureBlobAdapter(retry_policy)
        azure.initialize(azure_credentials, default_container_name)

        s3 = S3Adapter(retry_policy)
        s3.initialize(s3_credentials, default_bucket_name)

        self.azure = azure
        self.s3 = s3

    def is_initialized(self) -> bool:
        return (
            self.azure is not None and self.s3 is not None
            and self.azure.is_initialized() and self.s3.is_initialized()
        )

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _require_initialized(self) -> None:
        if not self.is_initialized():
            raise NotInitializedError("MultiStorageClient.initialize() has not been called")

    def _resolve(self, container_name: Optional[str], bucket_name: Optional[str]) -> ResolvedScopes:
        self._require_initialized()
        defaults = ScopeDefaults(
            container_name=self.azure.default_scope,
            bucket_name=self.s3.default_scope
        )
        return resolve_scopes(defaults, container_name, bucket_name)

    def _adapter(self, backend: StorageLocation) -> StorageAdapter:
        if backend == StorageLocation.AZURE_BLOB:
            return self.azure
        if backend == StorageLocation.AWS_S3:
            return self.s3
        raise ValueError(f"Not a single backend: {backend.label}")

    @staticmethod
    def _scope(backend: StorageLocation, scopes: ResolvedScopes) -> Optional[str]:
        if backend == StorageLocation.AZURE_BLOB:
            return scopes.container_name
        return scopes.bucket_name

    def _timed(self, operation: str):
        return self.metrics.time_operation(operation) if self.metrics else nullcontext()

    def _record(self, operation: str, backend: StorageLocation, success: bool) -> None:
        if self.metrics:
            self.metrics.record_backend_call(operation, backend.label, success)

    async def _fan_out(
        self,
        operation: str,
        calls: Dict[StorageLocation, Awaitable[Any]]
    ) -> Dict[StorageLocation, Any]:
        """Await independent backend calls together; exceptions become results"""
        backends = list(calls)
        results = await asyncio.gather(*calls.values(), return_exceptions=True)
        outcomes = {}
        for backend, result in zip(backends, results):
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result
            self._record(operation, backend, not isinstance(result, Exception))
            outcomes[backend] = result
        return outcomes

    async def _locate(self, path: str, scopes: ResolvedScopes) -> StorageLocation:
        outcomes = await self._fan_out('exists', {
            StorageLocation.AZURE_BLOB: self.azure.exists(path, scopes.container_name),
            StorageLocation.AWS_S3: self.s3.exists(path, scopes.bucket_name),
        })

        presence = {}
        for backend, outcome in outcomes.items():
            if isinstance(outcome, ObjectNotFoundError):
                presence[backend] = False
            elif isinstance(outcome, Exception):
                raise IndeterminateStateError(path, backend.label) from outcome
            else:
                presence[backend] = bool(outcome)

        return StorageLocation.from_presence(
            presence[StorageLocation.AZURE_BLOB],
            presence[StorageLocation.AWS_S3]
        )

    async def _resolve_source(self, path: str, scopes: ResolvedScopes) -> StorageLocation:
        location = await self._locate(path, scopes)
        if location.is_empty:
            raise ObjectNotFoundError(path)
        return location

    # ── Presence ─────────────────────────────────────────────────────────────

    async def locate(
        self,
        path: str,
        container_name: Optional[str] = None,
        bucket_name: Optional[str] = None
    ) -> StorageLocation:
        """
        Find the backend(s) holding the object at the given path.

        Both backends are probed concurrently. If either probe fails, the
        whole call fails with IndeterminateStateError rather than reporting a
        possibly wrong presence.
        """
        scopes = self._resolve(container_name, bucket_name)
        with self._timed('locate'):
            return await self._locate(path, scopes)

    async def exists(
        self,
        path: str,
        container_name: Optional[str] = None,
        bucket_name: Optional[str] = None
    ) -> bool:
        location = await self.locate(path, container_name, bucket_name)
        return not location.is_empty

    # ── Listing ──────────────────────────────────────────────────────────────

    async def list_entries(
        self,
        prefix: str = '',
        container_name: Optional[str] = None,
        bucket_name: Optional[str] = None
    ) -> Dict[StorageLocation, List[ObjectEntry]]:
        """
        List the objects matching the prefix in each backend.

        Note that this can be expensive. A backend whose listing fails is
        logged and contributes an empty list.
        """
        scopes = self._resolve(container_name, bucket_name)
        with self._timed('list'):
            outcomes = await self._fan_out('list', {
                StorageLocation.AZURE_BLOB: self.azure.list(prefix, scopes.container_name),
                StorageLocation.AWS_S3: self.s3.list(prefix, scopes.bucket_name),
            })

        listings = {}
        for backend, outcome in outcomes.items():
            if isinstance(outcome, Exception):
                self.logger.error(
                    f"Failed to list {backend.label} objects with prefix '{prefix}': {outcome}",
                    extra={'operation': 'list', 'backend': backend.label, 'path': prefix}
                )
                listings[backend] = []
            else:
                listings[backend] = list(outcome)
        return listings

    async def list_names(
        self,
        prefix: str = '',
        container_name: Optional[str] = None,
        bucket_name: Optional[str] = None
    ) -> List[str]:
        """
        List the names of objects matching the prefix in either backend.

        Names held by both backends appear once. A backend whose listing
        fails is logged and contributes nothing.
        """
        scopes = self._resolve(container_name, bucket_name)
        with self._timed('list_names'):
            outcomes = await self._fan_out('list_names', {
                StorageLocation.AZURE_BLOB: self.azure.list_names(prefix, scopes.container_name),
                StorageLocation.AWS_S3: self.s3.list_names(prefix, scopes.bucket_name),
            })

        names: List[str] = []
        seen = set()
        for backend, outcome in outcomes.items():
            if isinstance(outcome, Exception):
                self.logger.error(
                    f"Failed to list {backend.label} names with prefix '{prefix}': {outcome}",
                    extra={'operation': 'list_names', 'backend': backend.label, 'path': prefix}
                )
                continue
            for name in outcome:
                if name not in seen:
                    seen.add(name)
                    names.append(name)
        return names

    # ── Reads ────────────────────────────────────────────────────────────────

    async def read(
        self,
        path: str,
        container_name: Optional[str] = None,
        bucket_name: Optional[str] = None
    ) -> bytes:
        """Read an object's bytes from the first backend holding it; no replication"""
        scopes = self._resolve(container_name, bucket_name)
        with self._timed('read'):
            location = await self._resolve_source(path, scopes)
            source = location.backends()[0]
            return await self._adapter(source).fetch(path, self._scope(source, scopes))

    async def read_to_path(
        self,
        path: str,
        destination: PathLike,
        container_name: Optional[str] = None,
        bucket_name: Optional[str] = None
    ) -> StorageLocation:
        """
        Download an object to a local path without replicating it.

        Returns the backend the object was read from.
        """
        scopes = self._resolve(container_name, bucket_name)
        with self._timed('read_to_path'):
            location = await self._resolve_source(path, scopes)
            source = location.backends()[0]
            await self._adapter(source).fetch_to_path(path, destination, self._scope(source, scopes))
            return source

    async def read_to_path_with_replication(
        self,
        path: str,
        destination: PathLike,
        container_name: Optional[str] = None,
        bucket_name: Optional[str] = None
    ) -> ReplicationResult:
        """
        Download an object to a local path, replicating it if necessary.

        If the object exists in only one backend, the downloaded file is
        pushed to the other backend under the same path. A failed push raises
        PartialReplicationError; the local file is kept.
        """
        scopes = self._resolve(container_name, bucket_name)
        with self._timed('read_to_path_with_replication'):
            location = await self._resolve_source(path, scopes)
            source = location.backends()[0]
            await self._adapter(source).fetch_to_path(path, destination, self._scope(source, scopes))

            if location == StorageLocation.BOTH:
                return ReplicationResult(source=source)

            target = source.other()
            try:
                await self._adapter(target).store(
                    destination,
                    path,
                    self._scope(target, scopes),
                    content_type=guess_content_type(path)
                )
            except (ReplicatorError, OSError) as e:
                self._record_replication(source, target, False)
                self.logger.error(
                    f"Failed to replicate {path} from {source.label} to {target.label}: {e}",
                    extra={'operation': 'replicate', 'backend': target.label, 'path': path}
                )
                raise PartialReplicationError(path, source, target, str(destination)) from e

            self._record_replication(source, target, True)
            self.logger.info(
                f"Replicated {path} from {source.label} to {target.label}",
                extra={'operation': 'replicate', 'backend': target.label, 'path': path}
            )
            return ReplicationResult(source=source, replicated_to=target)

    def _record_replication(self, source: StorageLocation, target: StorageLocation, success: bool) -> None:
        if self.metrics:
            self.metrics.record_replication(source.label, target.label, success)

    # ── Writes ───────────────────────────────────────────────────────────────

    async def write(
        self,
        source: PathLike,
        path: str,
        targets: StorageLocation = StorageLocation.BOTH,
        container_name: Optional[str] = None,
        bucket_name: Optional[str] = None,
        content_type: Optional[str] = None
    ) -> StorageLocation:
        """
        Upload a local file to the target backend(s).

        Uploads run concurrently. A backend failure is logged and does not
        fail the call; the returned location holds only the backends where
        the upload succeeded.
        """
        scopes = self._resolve(container_name, bucket_name)
        if not Path(source).is_file():
            raise FileNotFoundError(f"Local source not found: {source}")
        if targets.is_empty:
            return StorageLocation.NONE

        with self._timed('write'):
            outcomes = await self._fan_out('store', {
                backend: self._adapter(backend).store(
                    source, path, self._scope(backend, scopes), content_type=content_type
                )
                for backend in targets.backends()
            })

        landed = StorageLocation.NONE
        for backend, outcome in outcomes.items():
            if isinstance(outcome, Exception):
                self.logger.error(
                    f"Failed to upload {path} to {backend.label}: {outcome}",
                    extra={'operation': 'write', 'backend': backend.label, 'path': path}
                )
            else:
                landed |= backend

        if landed != targets:
            self.logger.warning(
                f"Upload of {path} landed in {landed.label}, wanted {targets.label}",
                extra={'operation': 'write', 'path': path}
            )
        return landed

    # ── Deletes ──────────────────────────────────────────────────────────────

    async def delete_many(
        self,
        paths: Iterable[str],
        container_name: Optional[str] = None,
        bucket_name: Optional[str] = None
    ) -> None:
        """
        Delete objects from both backends.

        Both deletes always run to completion. If either failed, the last
        captured error is raised.
        """
        scopes = self._resolve(container_name, bucket_name)
        names = list(paths)
        if not names:
            return

        with self._timed('delete'):
            outcomes = await self._fan_out('delete', {
                StorageLocation.AZURE_BLOB: self.azure.delete_many(names, scopes.container_name),
                StorageLocation.AWS_S3: self.s3.delete_many(names, scopes.bucket_name),
            })

        last_error: Optional[Exception] = None
        for backend, outcome in outcomes.items():
            if isinstance(outcome, Exception):
                self.logger.error(
                    f"Failed to delete {len(names)} object(s) from {backend.label}: {outcome}",
                    extra={'operation': 'delete', 'backend': backend.label, 'path': names[0]}
                )
                last_error = outcome

        if last_error is not None:
            raise last_error

    async def delete_one(
        self,
        path: str,
        container_name: Optional[str] = None,
        bucket_name: Optional[str] = None
    ) -> None:
        await self.delete_many([path], container_name, bucket_name)
