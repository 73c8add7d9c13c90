"""
Infrastructure package for sqlite-changestream.

Centralizes database connectivity concerns (connection factory, transactions).
Keep this layer focused on I/O and resource management, decoupled from
capture logic.
"""

from changestream.infrastructure.db_factory import get_sync_connection, transaction

__all__ = [
    "get_sync_connection",
    "transaction",
]
