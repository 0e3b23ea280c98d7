"""Configuration primitives for sessionport."""

from .settings import SessionSettings, get_settings

__all__ = ["SessionSettings", "get_settings"]
