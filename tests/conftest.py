"""
Shared fixtures

FakeStorageAdapter keeps objects in memory so the coordinator can be tested
without live cloud connections. Failures are injected per operation.
"""

import asyncio
from typing import Dict, Iterable, List, Optional, Tuple

import pytest

from lazy_replicator.client import MultiStorageClient
from lazy_replicator.config import RetryPolicy
from lazy_replicator.exceptions import ObjectNotFoundError
from lazy_replicator.storage.base import ObjectEntry, StorageAdapter

NO_RETRY = RetryPolicy(max_attempts=1, min_wait_seconds=0, max_wait_seconds=0)


class FakeStorageAdapter(StorageAdapter):
    """In-memory storage backend with per-operation failure injection"""

    def __init__(self, name: str, default_scope: Optional[str] = 'test-data'):
        super().__init__(NO_RETRY)
        self.name = name
        self.default_scope = default_scope
        self.objects: Dict[Tuple[str, str], bytes] = {}
        self.failures: Dict[str, Exception] = {}
        self.calls: List[Tuple[str, str, str]] = []
        self.initialized = True

    def is_initialized(self) -> bool:
        return self.initialized

    def put(self, path: str, data: bytes, scope: Optional[str] = None) -> None:
        self.objects[(scope or self.default_scope, path)] = data

    def get(self, path: str, scope: Optional[str] = None) -> Optional[bytes]:
        return self.objects.get((scope or self.default_scope, path))

    def fail(self, operation: str, error: Exception) -> None:
        self.failures[operation] = error

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)

    async def _enter(self, operation: str, path: str, scope: Optional[str]) -> str:
        resolved = self._scope(scope)
        self.calls.append((operation, path, resolved))
        # Yield so concurrent calls interleave
        await asyncio.sleep(0)
        if operation in self.failures:
            raise self.failures[operation]
        return resolved

    async def exists(self, path: str, scope: Optional[str] = None) -> bool:
        resolved = await self._enter('exists', path, scope)
        return (resolved, path) in self.objects

    async def list(self, prefix: str = '', scope: Optional[str] = None) -> List[ObjectEntry]:
        resolved = await self._enter('list', prefix, scope)
        return [
            ObjectEntry(name=name, size=len(data))
            for (object_scope, name), data in sorted(self.objects.items())
            if object_scope == resolved and name.startswith(prefix)
        ]

    async def fetch(self, path: str, scope: Optional[str] = None) -> bytes:
        resolved = await self._enter('fetch', path, scope)
        try:
            return self.objects[(resolved, path)]
        except KeyError:
            raise ObjectNotFoundError(path, backend=self.name) from None

    async def fetch_to_path(self, path: str, destination, scope: Optional[str] = None) -> None:
        data = await self.fetch(path, scope)
        with open(destination, 'wb') as f:
            f.write(data)

    async def store(self, source, path: str, scope: Optional[str] = None, content_type: Optional[str] = None) -> None:
        resolved = await self._enter('store', path, scope)
        with open(source, 'rb') as f:
            self.objects[(resolved, path)] = f.read()

    async def delete_many(self, paths: Iterable[str], scope: Optional[str] = None) -> None:
        names = list(paths)
        resolved = await self._enter('delete', ','.join(names), scope)
        for name in names:
            self.objects.pop((resolved, name), None)


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def azure():
    return FakeStorageAdapter('azure')


@pytest.fixture
def s3():
    return FakeStorageAdapter('s3')


@pytest.fixture
def client(azure, s3):
    return MultiStorageClient(azure_adapter=azure, s3_adapter=s3)


@pytest.fixture
def source_file(tmp_path):
    path = tmp_path / "source.jpg"
    path.write_bytes(b"\xff\xd8\xff\xe0 not really a jpeg")
    return path
