"""
Share token lifecycle for logs.

This module manages how non-owners gain access to a log:
- issue_token / revoke_token: owner creates or clears the single live token
- inspect_token: preview what a token grants, without side effects
- join: redeem a token into a membership (idempotent)
- list_members / remove_member: owner manages memberships

Invariants:
    - A log has at most one live share token; issuing replaces the old one
    - A replaced or revoked token stops granting membership immediately
    - The owner is never a member of their own log
    - Joining twice leaves exactly one membership row
    - Owner-only operations answer non-owners with NotFoundError

How to change safely:
    - Token replacement must stay a single-row UPDATE
    - Keep join's conflict handling: already a member is success
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..errors import ConflictError, NotFoundError, OwnerCannotJoinError
from ..store import LogbookStore, MembershipRecord
from ..tokens import decode_token, encode_token, new_token
from .acl import AccessResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShareInfo:
    """What a share token grants, from the caller's point of view."""

    log_id: str
    log_name: str
    owner_name: str
    caller_is_owner: bool
    caller_already_member: bool


@dataclass(frozen=True)
class JoinResult:
    """Outcome of redeeming a share token.

    Attributes:
        log_id: The joined log
        log_name: Its display name
        created: False if the caller was already a member
    """

    log_id: str
    log_name: str
    created: bool


class ShareManager:
    """Issues, revokes and redeems share tokens.

    Example:
        >>> shares = ShareManager(store, AccessResolver(store))
        >>> token = await shares.issue_token(log_id, owner.id)
        >>> await shares.join(token, friend.id)
        JoinResult(log_id=..., log_name='Pushups', created=True)
    """

    def __init__(self, store: LogbookStore, access: AccessResolver) -> None:
        self.store = store
        self.access = access

    async def issue_token(self, log_id: str, owner_id: str) -> str:
        """Generate a new share token, replacing any existing one.

        Returns:
            The token as lowercase hex

        Raises:
            NotFoundError: No log with that id is owned by owner_id
        """
        token = new_token()
        if not await self.store.set_share_token(log_id, owner_id, token):
            raise NotFoundError("log")

        logger.info("Share token issued", extra={"log_id": log_id})
        return encode_token(token)

    async def revoke_token(self, log_id: str, owner_id: str) -> None:
        """Clear a log's share token. Clearing an already-clear token is fine.

        Raises:
            NotFoundError: No log with that id is owned by owner_id
        """
        if not await self.store.set_share_token(log_id, owner_id, None):
            raise NotFoundError("log")

        logger.info("Share token revoked", extra={"log_id": log_id})

    async def inspect_token(self, presented: str, identity_id: str) -> ShareInfo:
        """Describe what a token grants the caller. Read-only.

        Raises:
            NotFoundError: Token malformed, replaced or revoked
        """
        token = decode_token(presented)
        if token is None:
            raise NotFoundError("share link", "invalid share link")

        found = await self.store.find_log_by_share_token(token)
        if found is None:
            raise NotFoundError("share link", "invalid share link")

        log, owner_name = found
        if log.owner_id == identity_id:
            return ShareInfo(
                log_id=log.id,
                log_name=log.name,
                owner_name=owner_name,
                caller_is_owner=True,
                caller_already_member=False,
            )

        return ShareInfo(
            log_id=log.id,
            log_name=log.name,
            owner_name=owner_name,
            caller_is_owner=False,
            caller_already_member=await self.store.membership_exists(log.id, identity_id),
        )

    async def join(self, presented: str, identity_id: str) -> JoinResult:
        """Redeem a share token into a membership.

        Raises:
            NotFoundError: Token malformed, replaced or revoked
            OwnerCannotJoinError: The caller owns the log
        """
        token = decode_token(presented)
        if token is None:
            raise NotFoundError("share link", "invalid share link")

        found = await self.store.find_log_by_share_token(token)
        if found is None:
            raise NotFoundError("share link", "invalid share link")

        log, _ = found
        if log.owner_id == identity_id:
            raise OwnerCannotJoinError(log.id)

        try:
            await self.store.add_membership(log.id, identity_id)
        except ConflictError:
            return JoinResult(log_id=log.id, log_name=log.name, created=False)

        logger.info("Joined log", extra={"log_id": log.id, "user_id": identity_id})
        return JoinResult(log_id=log.id, log_name=log.name, created=True)

    async def list_members(self, log_id: str, owner_id: str) -> list[MembershipRecord]:
        """List members in join order. Owner only.

        Raises:
            NotFoundError: Caller does not own the log
        """
        await self.access.require_owner(log_id, owner_id)
        return await self.store.list_memberships(log_id)

    async def remove_member(self, log_id: str, owner_id: str, membership_id: str) -> None:
        """Remove a membership row. Owner only.

        Raises:
            NotFoundError: Caller does not own the log, or no such membership
        """
        await self.access.require_owner(log_id, owner_id)
        if not await self.store.delete_membership(membership_id, log_id):
            raise NotFoundError("share")

        logger.info("Member removed", extra={"log_id": log_id, "share_id": membership_id})
