"""
Scope resolution

A scope is the Azure container or S3 bucket a call addresses. Explicit
arguments win, then the configured defaults; when one side is still empty it
borrows the other side's name, so a single name can address both backends.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ScopeDefaults:
    """Default container/bucket names configured at initialization"""
    container_name: Optional[str] = None
    bucket_name: Optional[str] = None


@dataclass(frozen=True)
class ResolvedScopes:
    """Container and bucket to use for one call"""
    container_name: Optional[str]
    bucket_name: Optional[str]


def resolve_scopes(
    defaults: ScopeDefaults,
    container_name: Optional[str] = None,
    bucket_name: Optional[str] = None
) -> ResolvedScopes:
    """Resolve per-call scope overrides against the configured defaults"""
    container = container_name or defaults.container_name
    bucket = bucket_name or defaults.bucket_name or container
    if not container:
        container = bucket
    return ResolvedScopes(container_name=container or None, bucket_name=bucket or None)
