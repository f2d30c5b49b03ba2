"""Utility modules: AWS session handling and logging setup."""

from .aws_client import AWSClientManager
from .logging import setup_logging

__all__ = [
    "AWSClientManager",
    "setup_logging",
]
