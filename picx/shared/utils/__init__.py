"""Shared utilities: generators and object-key helpers."""

from picx.shared.utils.generators import generate_cuid
from picx.shared.utils.keys import (
    build_object_key,
    generate_object_name,
    normalize_folder,
    normalize_key,
    sanitize_filename,
)

__all__ = [
    "generate_cuid",
    "build_object_key",
    "generate_object_name",
    "normalize_folder",
    "normalize_key",
    "sanitize_filename",
]
