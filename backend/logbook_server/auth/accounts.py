"""Account registration, login and profile changes."""

from __future__ import annotations

import logging

import bcrypt

from ..errors import ForbiddenError, NotFoundError, UnauthenticatedError, ValidationError
from ..store import LogbookStore
from .sessions import Identity, SessionResolver

logger = logging.getLogger(__name__)

MAX_USERNAME_LENGTH = 30
MIN_PASSWORD_LENGTH = 8


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(plain: str, hashed: str) -> bool:
    """Verify a password against its hash."""
    try:
        return bcrypt.checkpw(plain.encode(), hashed.encode())
    except ValueError:
        return False


def _normalize_email(email: str | None) -> str | None:
    if email is None:
        return None
    email = email.strip()
    return email or None


def _check_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"password must be at least {MIN_PASSWORD_LENGTH} characters",
            field_name="password",
        )


class AccountService:
    """Creates accounts and authenticates users.

    Login and registration return a fresh session credential issued by the
    SessionResolver; the transport sets it as a cookie.
    """

    def __init__(
        self,
        store: LogbookStore,
        sessions: SessionResolver,
        allow_registration: bool = False,
    ) -> None:
        self.store = store
        self.sessions = sessions
        self.allow_registration = allow_registration

    async def register(
        self,
        username: str,
        password: str,
        email: str | None = None,
    ) -> tuple[Identity, str]:
        """Create an account and log it in.

        Returns:
            (identity, session credential)

        Raises:
            ForbiddenError: Registration is disabled
            ValidationError: Username or password out of range
            ConflictError: Username or email already taken
        """
        if not self.allow_registration:
            raise ForbiddenError("registration is currently disabled", code="REGISTRATION_DISABLED")

        username = (username or "").strip()
        if not username or len(username) > MAX_USERNAME_LENGTH:
            raise ValidationError(
                f"username must be 1-{MAX_USERNAME_LENGTH} characters",
                field_name="username",
            )
        _check_password(password)

        record = await self.store.create_user(username, _normalize_email(email), hash_password(password))
        identity = Identity.from_record(record)
        token = await self.sessions.create(identity.id)

        logger.info("User registered", extra={"user_id": identity.id})
        return identity, token

    async def login(self, username: str, password: str) -> tuple[Identity, str]:
        """Check credentials and issue a session.

        Raises:
            UnauthenticatedError: Unknown user or wrong password
        """
        found = await self.store.get_user_credentials((username or "").strip())
        if found is None:
            raise UnauthenticatedError("invalid username or password")

        record, password_hash = found
        if not verify_password(password, password_hash):
            logger.info("Failed login", extra={"user_id": record.id})
            raise UnauthenticatedError("invalid username or password")

        identity = Identity.from_record(record)
        token = await self.sessions.create(identity.id)
        return identity, token

    async def change_password(
        self,
        identity: Identity,
        current_password: str,
        new_password: str,
    ) -> None:
        """Replace a user's password after checking the current one.

        Raises:
            ForbiddenError: Current password is wrong
            ValidationError: New password too short
        """
        password_hash = await self.store.get_password_hash(identity.id)
        if password_hash is None:
            raise NotFoundError("user")
        if not verify_password(current_password, password_hash):
            raise ForbiddenError("current password is incorrect", code="WRONG_PASSWORD")

        _check_password(new_password)
        await self.store.update_password_hash(identity.id, hash_password(new_password))
        logger.info("Password changed", extra={"user_id": identity.id})

    async def change_email(self, identity: Identity, email: str | None) -> Identity:
        """Set or clear (blank/None) a user's email.

        Raises:
            ConflictError: Email already used by another account
        """
        record = await self.store.update_email(identity.id, _normalize_email(email))
        if record is None:
            raise NotFoundError("user")
        return Identity.from_record(record)
