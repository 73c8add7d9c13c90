"""
Utilities package for sqlite-changestream.

Exports shared helpers for logging and other cross-cutting concerns.
Keep this package lightweight and free of capture-specific logic.
"""

from changestream.utils.logging import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
]
