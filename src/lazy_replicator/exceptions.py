"""
Exception hierarchy for the lazy storage replicator.

Presence failures, confirmed absence and per-backend transport failures are
kept distinct so callers can branch on "object truly absent" versus "could not
be determined right now".
"""

from typing import Optional


class ReplicatorError(Exception):
    """Base class for all replicator errors"""


class NotInitializedError(ReplicatorError):
    """Raised when an operation is attempted before initialize()"""


class ConfigError(ReplicatorError):
    """Raised for missing or malformed configuration"""


class ObjectNotFoundError(ReplicatorError):
    """The object is confirmed absent (from one backend, or from all of them)"""

    def __init__(self, path: str, backend: Optional[str] = None):
        self.path = path
        self.backend = backend
        where = f" in {backend}" if backend else ""
        super().__init__(f"Object not found{where}: {path}")


class BackendError(ReplicatorError):
    """A single backend call failed for a reason other than absence"""

    def __init__(self, message: str, backend: Optional[str] = None, path: Optional[str] = None):
        self.backend = backend
        self.path = path
        super().__init__(message)


class PartialReplicationError(BackendError):
    """
    The object was read to the local destination, but pushing it to the
    backend that was missing it failed.
    """

    def __init__(self, path: str, source, target, destination: str):
        self.source = source
        self.target = target
        self.destination = destination
        super().__init__(
            f"Read {path} from {source.label} to {destination}, "
            f"but replication to {target.label} failed",
            backend=target.label,
            path=path,
        )


class IndeterminateStateError(ReplicatorError):
    """A presence probe failed, so the object's location cannot be stated"""

    def __init__(self, path: str, backend: Optional[str] = None):
        self.path = path
        self.backend = backend
        super().__init__(f"Could not determine where {path} is stored (probe of {backend} failed)")
