"""
Prometheus metrics for the replicator.
"""

import logging
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram

logger = logging.getLogger(__name__)


class ReplicatorMetrics:
    """
    Prometheus metrics for backend calls and lazy replication pushes.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize replicator metrics.

        Args:
            registry: Prometheus registry to use (default: global registry)
        """
        self.registry = registry

        self.backend_operations = Counter(
            'lazy_replicator_backend_operations_total',
            'Backend calls issued by the replicator',
            ['operation', 'backend', 'result'],
            registry=registry
        )

        self.replications = Counter(
            'lazy_replicator_replications_total',
            'Read-triggered replication pushes',
            ['source', 'target', 'result'],
            registry=registry
        )

        self.operation_duration = Histogram(
            'lazy_replicator_operation_duration_seconds',
            'Duration of replicator operations in seconds',
            ['operation'],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
            registry=registry
        )

    def record_backend_call(self, operation: str, backend: str, success: bool) -> None:
        self.backend_operations.labels(
            operation=operation,
            backend=backend,
            result='success' if success else 'failure'
        ).inc()

    def record_replication(self, source: str, target: str, success: bool) -> None:
        self.replications.labels(
            source=source,
            target=target,
            result='success' if success else 'failure'
        ).inc()

    def time_operation(self, operation: str):
        """Context manager timing one replicator operation"""
        return self.operation_duration.labels(operation=operation).time()
