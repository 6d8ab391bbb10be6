"""Configuration module for the Sage FAQ bot."""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
