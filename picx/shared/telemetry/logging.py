"""Logging for picx storage: stdout handler, quiet HTTP client loggers."""

import logging
import sys

from picx.core.config import Settings, get_settings

# Client libraries that log full request URLs (pre-signed URLs carry
# credentials in the query string) at INFO/DEBUG.
_NOISY_LOGGERS = ("httpx", "httpcore", "botocore", "boto3", "urllib3")


def setup_logging(settings: Settings | None = None) -> None:
    """Configure root logging once for the host process.

    DEBUG when settings.debug, otherwise INFO. HTTP client loggers stay at
    WARNING either way.
    """
    settings = settings or get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Module logger; pass __name__."""
    return logging.getLogger(name)
