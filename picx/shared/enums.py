"""Shared enumerations for picx.

Cross-cutting enums used by routes and infrastructure.
"""

from enum import Enum


class _ValuesMixin:
    """Mixin that adds a values() classmethod to str Enums."""

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid values as strings."""
        return [member.value for member in cls]


class StorageKind(_ValuesMixin, str, Enum):
    """Storage provider kind requested from the storage factory."""

    R2 = "R2"  # S3-compatible bucket, strongly consistent
    HF = "HF"  # version-controlled repository with LFS transfers
