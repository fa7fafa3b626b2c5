"""
Session resolution for the Logbook server.

This module maps an opaque session credential to an identity:
- resolve: credential -> Identity or ANONYMOUS (never raises for bad input)
- create: issue a new credential for an identity
- logout: delete the session behind a credential

Invariants:
    - A session whose expiry is <= now is treated exactly like a missing one
    - Expired rows are left in place; nothing here sweeps them
    - Resolution has no side effects on the store
    - Credentials are never logged

How to change safely:
    - Keep resolve() total: storage errors are the only thing it may raise
    - Changing TOKEN_BYTES invalidates every outstanding cookie
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from ..store import LogbookStore, UserRecord
from ..tokens import decode_token, encode_token, new_token

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL_SECONDS = 30 * 24 * 60 * 60


@dataclass(frozen=True)
class Identity:
    """An authenticated user.

    Attributes:
        id: User identifier
        username: Display name
        email: Optional contact address
    """

    id: str
    username: str
    email: str | None = None

    @property
    def is_anonymous(self) -> bool:
        return False

    @classmethod
    def from_record(cls, record: UserRecord) -> Identity:
        return cls(id=record.id, username=record.username, email=record.email)


class Anonymous:
    """The identity of a request without a valid session."""

    id = None
    username = None
    email = None

    @property
    def is_anonymous(self) -> bool:
        return True

    def __repr__(self) -> str:
        return "ANONYMOUS"


ANONYMOUS = Anonymous()


@dataclass(frozen=True)
class SessionResolution:
    """Outcome of resolving a presented credential.

    Attributes:
        identity: The resolved Identity, or ANONYMOUS
        clear_credential: The transport should drop the presented credential
    """

    identity: Identity | Anonymous
    clear_credential: bool = False


class SessionResolver:
    """Resolves, issues and revokes session credentials.

    Example:
        >>> resolver = SessionResolver(store)
        >>> token = await resolver.create(user.id)
        >>> (await resolver.resolve(token)).identity.username
        'alice'
    """

    def __init__(
        self,
        store: LogbookStore,
        ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the resolver.

        Args:
            store: Credential store
            ttl_seconds: Session lifetime
            clock: Wall clock in seconds, injectable for tests
        """
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    async def resolve(self, presented: str | None) -> SessionResolution:
        """Resolve a presented credential.

        Args:
            presented: Credential as sent by the client, or None

        Returns:
            SessionResolution; ANONYMOUS for absent, malformed,
            unknown or expired credentials
        """
        if presented is None:
            return SessionResolution(ANONYMOUS)

        token = decode_token(presented)
        if token is None:
            logger.debug("Malformed session credential presented")
            return SessionResolution(ANONYMOUS, clear_credential=True)

        user = await self.store.get_session_user(token, self._now_ms())
        if user is None:
            return SessionResolution(ANONYMOUS, clear_credential=True)

        return SessionResolution(Identity.from_record(user))

    async def create(self, identity_id: str) -> str:
        """Issue a new session for an identity.

        Returns:
            The credential as lowercase hex
        """
        token = new_token()
        now = self._now_ms()
        await self.store.create_session(
            identity_id,
            token,
            created_at=now,
            expires_at=now + self.ttl_seconds * 1000,
        )
        logger.info("Session created", extra={"user_id": identity_id})
        return encode_token(token)

    async def logout(self, presented: str | None) -> None:
        """Delete the session behind a credential. Always succeeds."""
        token = decode_token(presented)
        if token is None:
            return
        await self.store.delete_session(token)
