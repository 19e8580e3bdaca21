"""
Abstract Storage Interface

DESIGN DECISION: Persistence is a plain key-value blob store. The ledger is
written wholesale after every mutation, so the store only has to get, set and
delete whole values. This allows us to:
1. Use a local JSON file on a laptop
2. Use Google Sheets when the app is deployed
3. Use in-memory storage for testing

Values are JSON-compatible Python objects (dicts, lists, strings).
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import UUID

from finanza.models.audit import AuditEvent


# Keys used by the repositories
USERS_KEY = "finanza_users"
CURRENT_USER_KEY = "finanza_current_user"
PREFERENCES_KEY = "finanza_preferences"
LEDGER_KEY_PREFIX = "finanza_data_"


def ledger_key(user_id: str) -> str:
    """Key of one user's ledger blob."""
    return f"{LEDGER_KEY_PREFIX}{user_id}"


class KeyValueStoreInterface(ABC):
    """
    Abstract interface for the blob store.

    Any storage implementation (local file, Google Sheets, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """
        Read a value.

        Args:
            key: The key to read

        Returns:
            The stored value, or None if the key is absent

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """
        Overwrite a value.

        Args:
            key: The key to write
            value: JSON-compatible value

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """
        Remove a key.

        Returns:
            True if the key existed
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a correlation ID, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
        user_id: Optional[str] = None,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Args:
            limit: Maximum number of events to return
            user_id: Only events for this user, if given

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
