"""Storage provider factory: builds a bucket or repository provider from settings.

Selection is explicit: the caller passes the kind. Construction only
captures configuration, so building a provider per request is cheap and
nothing is cached here.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

import httpx

from picx.infrastructure.external.storage.protocol import StorageProtocol
from picx.shared.enums import StorageKind
from picx.shared.telemetry.logging import get_logger

if TYPE_CHECKING:
    from picx.core.config import Settings

logger = get_logger(__name__)


class StorageFactory:
    """Factory for storage provider instances by StorageKind."""

    _kinds: ClassVar[tuple[StorageKind, ...]] = (StorageKind.R2, StorageKind.HF)

    @classmethod
    def create_storage_service(
        cls,
        settings: "Settings",
        kind: StorageKind | str,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> StorageProtocol:
        """Create the provider for kind from settings.

        Args:
            settings: Application settings.
            kind: StorageKind or its value ("R2", "HF"; case-insensitive).
            http_client: Optional shared httpx.AsyncClient for the repository
                provider (connection reuse, test transports).

        Returns:
            BucketStorageService or RepoStorageService.

        Raises:
            ValueError: Unknown kind or missing required config.
        """
        value = kind.value if isinstance(kind, StorageKind) else str(kind).upper()
        if value not in cls.list_supported_kinds():
            raise ValueError(
                f"Unknown storage kind: {kind}. Supported: {cls.list_supported_kinds()}"
            )
        kind = StorageKind(value)
        if not settings.base_url:
            raise ValueError("BASE_URL required for public image URLs")

        if kind is StorageKind.R2:
            if not settings.s3_bucket:
                raise ValueError("S3_BUCKET required for R2 storage")
            # boto3 is only imported when a bucket provider is requested.
            from picx.infrastructure.external.storage.bucket_storage import (
                BucketStorageService,
            )

            logger.debug("Creating BucketStorageService for bucket %s", settings.s3_bucket)
            return BucketStorageService(
                bucket=settings.s3_bucket,
                base_url=settings.base_url,
                region=settings.s3_region,
                endpoint_url=settings.s3_endpoint_url,
                access_key=settings.s3_access_key,
                secret_key=(
                    settings.s3_secret_key.get_secret_value()
                    if settings.s3_secret_key
                    else None
                ),
            )

        from picx.infrastructure.external.storage.repo_storage import RepoStorageService

        token = settings.hf_token.get_secret_value() if settings.hf_token else ""
        if not token:
            raise ValueError("HF_TOKEN required for HF storage")
        if not settings.hf_repo:
            raise ValueError("HF_REPO required for HF storage")
        logger.debug("Creating RepoStorageService for %s", settings.hf_repo)
        return RepoStorageService(
            token=token,
            repo=settings.hf_repo,
            base_url=settings.base_url,
            repo_type=settings.hf_repo_type,
            revision=settings.hf_revision,
            endpoint=settings.hf_endpoint,
            timeout=settings.hf_timeout_seconds,
            verify_attempts=settings.hf_verify_attempts,
            verify_delay=settings.hf_verify_delay_seconds,
            http_client=http_client,
        )

    @classmethod
    def list_supported_kinds(cls) -> list[str]:
        """Return supported kind values."""
        return [k.value for k in cls._kinds]
