"""
Storage location set

Which backend(s) hold an object, as a composable flag set. Always derived from
fresh presence probes; never cached.
"""

from enum import Flag
from typing import Tuple


class StorageLocation(Flag):
    """Set of backends drawn from {Azure Blob Storage, AWS S3}"""
    NONE = 0
    AZURE_BLOB = 1
    AWS_S3 = 2
    BOTH = AZURE_BLOB | AWS_S3

    @classmethod
    def from_presence(cls, in_azure: bool, in_s3: bool) -> "StorageLocation":
        location = cls.NONE
        if in_azure:
            location |= cls.AZURE_BLOB
        if in_s3:
            location |= cls.AWS_S3
        return location

    @classmethod
    def parse(cls, text: str) -> "StorageLocation":
        """Parse 'azure', 's3', 'both' or 'none' (case-insensitive)"""
        aliases = {
            'azure': cls.AZURE_BLOB,
            'azure_blob': cls.AZURE_BLOB,
            's3': cls.AWS_S3,
            'aws_s3': cls.AWS_S3,
            'both': cls.BOTH,
            'none': cls.NONE,
        }
        try:
            return aliases[text.strip().lower()]
        except KeyError:
            raise ValueError(f"Unknown storage location: {text!r}") from None

    @property
    def is_empty(self) -> bool:
        return self.value == 0

    @property
    def is_single(self) -> bool:
        return len(self.backends()) == 1

    def backends(self) -> Tuple["StorageLocation", ...]:
        """Single-backend members of this set, in read priority order"""
        return tuple(
            backend for backend in (StorageLocation.AZURE_BLOB, StorageLocation.AWS_S3)
            if backend in self
        )

    def other(self) -> "StorageLocation":
        """The backend that is not this one (single-backend sets only)"""
        if not self.is_single:
            raise ValueError(f"other() is only defined for a single backend, not {self.label}")
        return StorageLocation(StorageLocation.BOTH.value ^ self.value)

    @property
    def label(self) -> str:
        labels = {
            StorageLocation.NONE: 'none',
            StorageLocation.AZURE_BLOB: 'azure',
            StorageLocation.AWS_S3: 's3',
            StorageLocation.BOTH: 'both',
        }
        return labels[self]
