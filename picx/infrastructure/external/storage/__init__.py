"""Storage: S3-compatible bucket and versioned-repository backends.

StorageFactory creates a provider for an explicitly requested kind.
Both implement StorageProtocol (put, get, head, delete, get_public_url),
so callers never special-case a backend. Implementations are loaded
lazily by the factory; boto3 is only imported for the bucket backend.
"""

from picx.infrastructure.external.storage.factory import StorageFactory
from picx.infrastructure.external.storage.protocol import (
    ByteRange,
    StorageBody,
    StorageObject,
    StorageObjectInfo,
    StorageObjectResult,
    StorageProtocol,
    parse_range,
)

__all__ = [
    "ByteRange",
    "StorageBody",
    "StorageFactory",
    "StorageObject",
    "StorageObjectInfo",
    "StorageObjectResult",
    "StorageProtocol",
    "parse_range",
]
