"""
Storage adapters

Uniform async access to Azure Blob Storage and AWS S3.
"""

from .base import ObjectEntry, StorageAdapter, build_retrying, guess_content_type
from .azure_blob import AzureBlobAdapter
from .s3 import S3Adapter

__all__ = [
    'ObjectEntry',
    'StorageAdapter',
    'build_retrying',
    'guess_content_type',
    'AzureBlobAdapter',
    'S3Adapter',
]
