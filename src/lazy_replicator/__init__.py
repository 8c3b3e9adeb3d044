"""
Lazy Storage Replicator

Keeps Azure Blob Storage and AWS S3 loosely consistent by replicating objects
on read-miss and fanning writes/deletes out to both backends.
"""

from .client import MultiStorageClient, ReplicationResult
from .config import AzureBlobCredentials, ReplicatorConfig, RetryPolicy, S3Credentials, load_config
from .exceptions import (
    BackendError,
    ConfigError,
    IndeterminateStateError,
    NotInitializedError,
    ObjectNotFoundError,
    PartialReplicationError,
    ReplicatorError,
)
from .location import StorageLocation
from .scopes import ResolvedScopes, ScopeDefaults, resolve_scopes
from .storage import AzureBlobAdapter, ObjectEntry, S3Adapter, StorageAdapter

__version__ = '0.1.0'

__all__ = [
    'MultiStorageClient',
    'ReplicationResult',
    'StorageLocation',
    'ScopeDefaults',
    'ResolvedScopes',
    'resolve_scopes',
    'StorageAdapter',
    'ObjectEntry',
    'AzureBlobAdapter',
    'S3Adapter',
    'AzureBlobCredentials',
    'S3Credentials',
    'RetryPolicy',
    'ReplicatorConfig',
    'load_config',
    'ReplicatorError',
    'NotInitializedError',
    'ConfigError',
    'ObjectNotFoundError',
    'BackendError',
    'PartialReplicationError',
    'IndeterminateStateError',
]
