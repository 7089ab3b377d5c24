"""picx configuration: pydantic-settings over env vars and .env.

Storage providers never read settings directly: the storage factory
copies the values each provider needs at construction.
"""

from functools import lru_cache

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Storage settings; env var names are the field names, case-insensitive.

    Provider-specific values (bucket, repository credential) are only
    required by the factory when that provider kind is requested.
    """

    # App
    app_name: str = "picx"
    app_version: str = "1.0.0"
    debug: bool = False

    # Public URL prefix for served images: {base_url}/rest/{key}
    base_url: str = ""

    # Which provider callers should request ("R2" or "HF"). Read by callers,
    # passed explicitly to StorageFactory.
    storage_type: str = "R2"

    # Bucket store (S3-compatible, e.g. Cloudflare R2)
    s3_bucket: str | None = None
    s3_region: str = "auto"
    s3_endpoint_url: str | None = None
    s3_access_key: str | None = None
    s3_secret_key: SecretStr | None = None

    # Versioned repository (Hugging Face Hub dataset/model repo)
    hf_token: SecretStr | None = None
    hf_repo: str | None = None
    hf_repo_type: str = "datasets"
    hf_revision: str = "main"
    hf_endpoint: str = "https://huggingface.co"
    hf_timeout_seconds: float = 60.0
    # Post-commit verification: the read path is eventually consistent.
    hf_verify_attempts: int = 10
    hf_verify_delay_seconds: float = 1.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_storage(self) -> "Settings":
        """Validate storage type and protocol tuning values."""
        if self.storage_type.upper() not in ("R2", "HF"):
            raise ValueError(
                f"Invalid storage_type '{self.storage_type}'. "
                "Must be one of: 'R2', 'HF'"
            )
        if self.hf_repo_type not in ("datasets", "models", "spaces"):
            raise ValueError(
                f"hf_repo_type must be 'datasets', 'models' or 'spaces', got: {self.hf_repo_type!r}"
            )
        if self.hf_verify_attempts < 1:
            raise ValueError("hf_verify_attempts must be at least 1")
        if self.hf_verify_delay_seconds < 0:
            raise ValueError("hf_verify_delay_seconds must not be negative")
        if self.hf_timeout_seconds <= 0:
            raise ValueError("hf_timeout_seconds must be positive")
        return self


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, built on first call.

    Refresh with get_settings.cache_clear() (tests overriding env vars).
    """
    return Settings()
