"""
Credential Service

Registers users and checks passwords. Passwords are only ever stored as
bcrypt hashes.

This is local, single-installation "login": it picks whose ledger to
load, it is not a security boundary.
"""

from typing import Optional

import bcrypt
import structlog

from finanza.models.user import User
from finanza.services.storage import DuplicateError, UserRepository


logger = structlog.get_logger(__name__)

MIN_PASSWORD_LENGTH = 4
# bcrypt only hashes the first 72 bytes
MAX_PASSWORD_BYTES = 72


class AuthenticationError(Exception):
    """Registration or login failed."""
    pass


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # Not a bcrypt hash
        return False


class CredentialService:
    """Register and authenticate users against the UserRepository."""

    def __init__(self, users: UserRepository):
        self._users = users

    async def register(self, username: str, email: str, password: str) -> User:
        """
        Create a user. New users are verified immediately.

        Raises:
            AuthenticationError: Missing username, bad password length, or name taken
        """
        username = username.strip()
        if not username:
            raise AuthenticationError("Username is required")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise AuthenticationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise AuthenticationError(
                f"Password must be at most {MAX_PASSWORD_BYTES} bytes"
            )

        user = User(
            username=username,
            email=email.strip(),
            password_hash=hash_password(password),
            is_verified=True,
        )
        try:
            await self._users.add(user)
        except DuplicateError as e:
            raise AuthenticationError(str(e))
        logger.info("user_registered", user_id=user.id, username=user.username)
        return user

    async def authenticate(self, username: str, password: str) -> User:
        """
        Check a username/password pair.

        Raises:
            AuthenticationError: Unknown user or wrong password (same message for both)
        """
        user: Optional[User] = await self._users.find_by_username(username)
        if user is None or not verify_password(password, user.password_hash):
            logger.warning("login_failed", username=username.strip())
            raise AuthenticationError("Invalid username or password")
        return user
