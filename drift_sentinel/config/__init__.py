"""Configuration for the drift sentinel."""

from .settings import Settings

__all__ = [
    "Settings",
]
