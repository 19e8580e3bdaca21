"""Services package."""

from finanza.services.auth import (
    AuthenticationError,
    CredentialService,
    hash_password,
    verify_password,
)
from finanza.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsKeyValueStore,
    InMemoryKeyValueStore,
    KeyValueStoreInterface,
    LedgerRepository,
    LocalAuditStorage,
    LocalJsonStore,
    NotFoundError,
    PreferencesRepository,
    StorageError,
    UserRepository,
)

__all__ = [
    # Auth
    "AuthenticationError",
    "CredentialService",
    "hash_password",
    "verify_password",
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsKeyValueStore",
    "InMemoryKeyValueStore",
    "KeyValueStoreInterface",
    "LedgerRepository",
    "LocalAuditStorage",
    "LocalJsonStore",
    "NotFoundError",
    "PreferencesRepository",
    "StorageError",
    "UserRepository",
]
