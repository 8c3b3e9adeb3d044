"""
Storage adapter contract

Every backend is reached only through StorageAdapter, so the coordinator can
be exercised against fakes without network access.
"""

import logging
import mimetypes
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Union

from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from ..config import RetryPolicy
from ..exceptions import BackendError, ObjectNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = 'application/octet-stream'

PathLike = Union[str, Path]


@dataclass
class ObjectEntry:
    """One object returned by a listing"""
    name: str
    size: Optional[int] = None
    last_modified: Optional[str] = None
    etag: Optional[str] = None


def guess_content_type(local_path: PathLike) -> str:
    content_type, _ = mimetypes.guess_type(str(local_path))
    return content_type or DEFAULT_CONTENT_TYPE


def _is_transient(error: BaseException) -> bool:
    return isinstance(error, BackendError) and not isinstance(error, ObjectNotFoundError)


def build_retrying(policy: Optional[RetryPolicy] = None) -> AsyncRetrying:
    """Retry transport failures with exponential backoff; never retry not-found"""
    policy = policy or RetryPolicy()
    return AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_exponential(
            multiplier=policy.multiplier,
            min=policy.min_wait_seconds,
            max=policy.max_wait_seconds
        ),
        retry=retry_if_exception(_is_transient),
        reraise=True,
    )


class StorageAdapter(ABC):
    """Base adapter for object storage operations"""

    #: Short backend name used in logs, metrics and errors
    name: str = 'storage'

    def __init__(self, retry_policy: Optional[RetryPolicy] = None):
        self.default_scope: Optional[str] = None
        self._retrying = build_retrying(retry_policy)

    async def _call(self, fn: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Run one backend call under the retry policy"""
        return await self._retrying.copy()(fn, *args, **kwargs)

    def _scope(self, scope: Optional[str]) -> str:
        resolved = scope or self.default_scope
        if not resolved:
            raise BackendError(f"No {self.scope_kind} given and no default configured", backend=self.name)
        return resolved

    @property
    def scope_kind(self) -> str:
        return 'scope'

    @abstractmethod
    def is_initialized(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def exists(self, path: str, scope: Optional[str] = None) -> bool:
        """True if the object exists; absence is False, never an error"""
        raise NotImplementedError

    @abstractmethod
    async def list(self, prefix: str = '', scope: Optional[str] = None) -> List[ObjectEntry]:
        raise NotImplementedError

    async def list_names(self, prefix: str = '', scope: Optional[str] = None) -> List[str]:
        entries = await self.list(prefix, scope)
        return [entry.name for entry in entries]

    @abstractmethod
    async def fetch(self, path: str, scope: Optional[str] = None) -> bytes:
        raise NotImplementedError

    @abstractmethod
    async def fetch_to_path(self, path: str, destination: PathLike, scope: Optional[str] = None) -> None:
        raise NotImplementedError

    @abstractmethod
    async def store(
        self,
        source: PathLike,
        path: str,
        scope: Optional[str] = None,
        content_type: Optional[str] = None
    ) -> None:
        """Upload a local file, overwriting any existing object"""
        raise NotImplementedError

    @abstractmethod
    async def delete_many(self, paths: Iterable[str], scope: Optional[str] = None) -> None:
        """Delete objects; paths that are already absent are not an error"""
        raise NotImplementedError

    async def delete_one(self, path: str, scope: Optional[str] = None) -> None:
        await self.delete_many([path], scope)


def remove_partial_file(destination: PathLike) -> None:
    """Remove a destination left behind by a failed download"""
    try:
        Path(destination).unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not remove partial download {destination}: {e}")
