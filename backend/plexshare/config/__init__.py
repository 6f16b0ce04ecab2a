"""Application configuration."""

from plexshare.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
