"""
Settings entry point used across the application.
"""
from procureops.core.settings import Settings, get_settings

settings: Settings = get_settings()

__all__ = ["Settings", "get_settings", "settings"]
