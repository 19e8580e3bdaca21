"""
Repositories over the key/value store.

Each repository owns a set of keys and converts between stored JSON and
the pydantic models. The ledger blob is loaded wholesale at session
start and written wholesale after every mutation.
"""

from typing import Optional

import structlog
from pydantic import ValidationError

from finanza.models.ledger import LedgerState
from finanza.models.user import User, UserPreferences
from finanza.services.storage.interface import (
    CURRENT_USER_KEY,
    PREFERENCES_KEY,
    USERS_KEY,
    DuplicateError,
    KeyValueStoreInterface,
    StorageError,
    ledger_key,
)


logger = structlog.get_logger(__name__)


class LedgerRepository:
    """Per-user ledger blobs."""

    def __init__(self, store: KeyValueStoreInterface):
        self._store = store

    async def load(self, user_id: str) -> LedgerState:
        """
        Load a user's ledger.

        A user with no saved data starts from LedgerState.initial().
        """
        raw = await self._store.get(ledger_key(user_id))
        if raw is None:
            logger.info("ledger_initialized", user_id=user_id)
            return LedgerState.initial()
        try:
            return LedgerState.model_validate(raw)
        except ValidationError as e:
            raise StorageError(f"Stored ledger for {user_id} is invalid: {e}")

    async def save(self, user_id: str, state: LedgerState) -> None:
        """Overwrite the user's ledger blob with the full state."""
        await self._store.set(ledger_key(user_id), state.model_dump(mode="json"))


class UserRepository:
    """Registered users plus the current-session marker."""

    def __init__(self, store: KeyValueStoreInterface):
        self._store = store

    async def list_users(self) -> list[User]:
        raw = await self._store.get(USERS_KEY) or []
        try:
            return [User.model_validate(item) for item in raw]
        except ValidationError as e:
            raise StorageError(f"Stored user list is invalid: {e}")

    async def find_by_username(self, username: str) -> Optional[User]:
        wanted = username.strip()
        return next((u for u in await self.list_users() if u.username == wanted), None)

    async def add(self, user: User) -> User:
        """
        Append a user.

        Raises:
            DuplicateError: If the username is taken
        """
        users = await self.list_users()
        if any(u.username == user.username for u in users):
            raise DuplicateError(f"Username already registered: {user.username}")
        users.append(user)
        await self._store.set(USERS_KEY, [u.model_dump(mode="json") for u in users])
        return user

    async def get_current(self) -> Optional[User]:
        raw = await self._store.get(CURRENT_USER_KEY)
        if raw is None:
            return None
        try:
            return User.model_validate(raw)
        except ValidationError:
            logger.warning("current_user_marker_invalid")
            return None

    async def set_current(self, user: User) -> None:
        await self._store.set(CURRENT_USER_KEY, user.public().model_dump(mode="json"))

    async def clear_current(self) -> None:
        await self._store.delete(CURRENT_USER_KEY)


class PreferencesRepository:
    """Theme, display currency and language for this installation."""

    def __init__(self, store: KeyValueStoreInterface):
        self._store = store

    async def load(self) -> UserPreferences:
        raw = await self._store.get(PREFERENCES_KEY)
        if raw is None:
            return UserPreferences()
        try:
            return UserPreferences.model_validate(raw)
        except ValidationError:
            logger.warning("preferences_invalid_using_defaults")
            return UserPreferences()

    async def save(self, preferences: UserPreferences) -> None:
        await self._store.set(PREFERENCES_KEY, preferences.model_dump(mode="json"))
