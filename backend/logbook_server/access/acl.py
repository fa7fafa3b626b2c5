"""
Access control for logs.

This module decides what an identity may do with a log:
- The owner may do anything (ADMIN)
- A member (joined via share token) may read and write entries (WRITE)
- Everyone else gets NotFoundError, exactly as if the log did not exist

Invariants:
    - Exactly one identity is the owner of a log
    - Membership never confers ADMIN
    - "No access" and "no such log" are indistinguishable to the caller
    - The grant carries the schema as read in the same lookup, so value
      validation uses the schema current at write time

How to change safely:
    - Never turn a NotFoundError here into a Forbidden-style error
    - New permission levels must be additive
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from ..errors import NotFoundError
from ..schema import FieldDef, schema_from_list
from ..store import LogbookStore

logger = logging.getLogger(__name__)


class Permission(Enum):
    """Permission levels on a log."""

    READ = "read"
    WRITE = "write"
    ADMIN = "admin"


# Permission hierarchy (higher includes lower)
PERMISSION_HIERARCHY = {
    Permission.READ: {Permission.READ},
    Permission.WRITE: {Permission.READ, Permission.WRITE},
    Permission.ADMIN: {Permission.READ, Permission.WRITE, Permission.ADMIN},
}


@dataclass(frozen=True)
class AccessGrant:
    """Resolved access of one identity to one log.

    Attributes:
        log_id: The log
        owner_id: The log's owner
        is_owner: Whether the identity is the owner
        schema: The log's field definitions at lookup time
    """

    log_id: str
    owner_id: str
    is_owner: bool
    schema: list[FieldDef] = field(default_factory=list)

    @property
    def permission(self) -> Permission:
        return Permission.ADMIN if self.is_owner else Permission.WRITE

    def allows(self, required: Permission) -> bool:
        return required in PERMISSION_HIERARCHY[self.permission]


class AccessResolver:
    """Resolves an identity's access to a log.

    Thread safety:
        This class is stateless; all state lives in the store.

    Example:
        >>> resolver = AccessResolver(store)
        >>> grant = await resolver.resolve_access(log_id, user.id)
        >>> grant.is_owner
        True
    """

    def __init__(self, store: LogbookStore) -> None:
        self.store = store

    async def resolve_access(self, log_id: str, identity_id: str) -> AccessGrant:
        """Determine an identity's access to a log.

        The log is fetched by id alone; ownership and membership are then
        checked against the identity.

        Args:
            log_id: Log identifier
            identity_id: Resolved identity of the caller

        Returns:
            AccessGrant with is_owner and the current schema

        Raises:
            NotFoundError: No such log, or the identity is neither owner nor member
        """
        log = await self.store.get_log(log_id)
        if log is None:
            raise NotFoundError("log")

        schema = schema_from_list(log.fields)

        if log.owner_id == identity_id:
            return AccessGrant(log_id=log_id, owner_id=log.owner_id, is_owner=True, schema=schema)

        if not await self.store.membership_exists(log_id, identity_id):
            logger.debug(
                "Access denied to log",
                extra={"log_id": log_id, "user_id": identity_id},
            )
            raise NotFoundError("log")

        return AccessGrant(log_id=log_id, owner_id=log.owner_id, is_owner=False, schema=schema)

    async def check_permission(
        self,
        log_id: str,
        identity_id: str,
        required: Permission,
    ) -> AccessGrant:
        """Resolve access and require a permission level.

        Raises:
            NotFoundError: Access is missing or insufficient
        """
        grant = await self.resolve_access(log_id, identity_id)
        if not grant.allows(required):
            raise NotFoundError("log")
        return grant

    async def require_owner(self, log_id: str, identity_id: str) -> AccessGrant:
        """Require that the identity owns the log.

        Non-owner members get the same NotFoundError as strangers.
        """
        return await self.check_permission(log_id, identity_id, Permission.ADMIN)
