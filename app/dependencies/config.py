"""
Settings dependency shared by the API routes.
"""

from app.core.config import AppSettings, get_settings


def get_app_settings() -> AppSettings:
    """Return the process-wide settings; overridable in tests."""
    return get_settings()


__all__ = ["get_app_settings"]
