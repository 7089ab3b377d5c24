"""Shared utilities: enums, telemetry, and object-key helpers.

Used by domain and infrastructure. No business logic.
"""

from picx.shared.enums import StorageKind
from picx.shared.utils import (
    build_object_key,
    generate_cuid,
    generate_object_name,
    normalize_folder,
    sanitize_filename,
)

__all__ = [
    "StorageKind",
    "build_object_key",
    "generate_cuid",
    "generate_object_name",
    "normalize_folder",
    "sanitize_filename",
]
