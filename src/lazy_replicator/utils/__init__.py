"""Utility modules for the lazy storage replicator."""

from .logging import StructuredFormatter, SimpleFormatter, setup_logging, get_logger

__all__ = ['StructuredFormatter', 'SimpleFormatter', 'setup_logging', 'get_logger']
