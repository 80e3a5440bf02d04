"""
Storage Backend Abstract Base Class.

Defines the interface the lock table and conflict ledger need from a
persistent store: plain writes, simple scans, and an atomic transaction
for compare-and-set. The store must be shared by every agent process.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from contextlib import AbstractContextManager
from typing import Any, Protocol


class Transaction(Protocol):
    """Statements issued inside `StorageBackend.transaction()`."""

    def execute(self, query: str, params: tuple = ()) -> Any: ...


class StorageBackend(ABC):
    """
    Abstract base class for storage backends.

    Implementations must provide:
    - execute(): Run write queries (INSERT, UPDATE, DELETE, CREATE)
    - fetch_one(): Fetch a single row
    - fetch_all(): Fetch all matching rows
    - transaction(): Run several statements atomically, excluding other
      writers (including other processes) until commit
    """

    @abstractmethod
    def execute(self, query: str, params: tuple = ()) -> None:
        """
        Execute a write query (INSERT, UPDATE, DELETE, CREATE TABLE, etc.).

        Args:
            query: SQL query string with placeholders
            params: Tuple of parameter values
        """
        pass

    @abstractmethod
    def execute_script(self, script: str) -> None:
        """Execute several statements, typically schema creation."""
        pass

    @abstractmethod
    def fetch_one(self, query: str, params: tuple = ()) -> dict[str, Any] | None:
        """
        Fetch a single row as a dictionary.

        Returns:
            Dictionary with column names as keys, or None if no row found
        """
        pass

    @abstractmethod
    def fetch_all(self, query: str, params: tuple = ()) -> list[dict[str, Any]]:
        """
        Fetch all matching rows as a list of dictionaries.
        """
        pass

    @abstractmethod
    def transaction(self) -> AbstractContextManager[Transaction]:
        """
        Open a write transaction.

        Commits on normal exit and rolls back if the block raises.
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Release any connections held by this backend."""
        pass


def rows_to_dicts(rows: Iterable[Any]) -> list[dict[str, Any]]:
    return [dict(row) for row in rows]
