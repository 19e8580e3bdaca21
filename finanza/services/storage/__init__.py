"""
Storage Services Package

Provides the key/value blob store interface, local and Google Sheets
implementations, and the repositories built on top of them.
"""

from finanza.services.storage.interface import (
    CURRENT_USER_KEY,
    PREFERENCES_KEY,
    USERS_KEY,
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    KeyValueStoreInterface,
    NotFoundError,
    StorageError,
    ledger_key,
)
from finanza.services.storage.local_store import (
    InMemoryKeyValueStore,
    LocalAuditStorage,
    LocalJsonStore,
)
from finanza.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsKeyValueStore,
)
from finanza.services.storage.repositories import (
    LedgerRepository,
    PreferencesRepository,
    UserRepository,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "KeyValueStoreInterface",
    "CURRENT_USER_KEY",
    "PREFERENCES_KEY",
    "USERS_KEY",
    "ledger_key",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Local implementation
    "InMemoryKeyValueStore",
    "LocalAuditStorage",
    "LocalJsonStore",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsKeyValueStore",
    # Repositories
    "LedgerRepository",
    "PreferencesRepository",
    "UserRepository",
]
