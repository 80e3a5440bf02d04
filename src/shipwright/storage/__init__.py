"""
Storage backends for shared agent state.

The lock table and conflict ledger live here so that every agent process
on the machine sees the same rows.
"""

from shipwright.storage.backend import StorageBackend, Transaction
from shipwright.storage.sqlite_backend import SQLiteBackend

__all__ = [
    "StorageBackend",
    "SQLiteBackend",
    "Transaction",
]
