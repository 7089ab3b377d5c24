"""Core: configuration and shared constants.

Single place for settings.
"""

from picx.core.config import Settings, get_settings

__all__ = ["Settings", "get_settings"]
