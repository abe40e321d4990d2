"""Configuration module."""

from brand_alerts.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
