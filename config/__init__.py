"""Configuration package for the unclaimed balance collector."""
from .settings import get_settings, Settings

__all__ = ["Settings", "get_settings"]
