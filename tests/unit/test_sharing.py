"""
Unit tests for the share token lifecycle.

Tests cover:
- Issuing, reissuing and revoking tokens
- Inspecting a token without side effects
- Idempotent join and owner rejection
- Member listing and removal
"""

import pytest

from backend.logbook_server.access import AccessResolver, ShareManager
from backend.logbook_server.errors import NotFoundError, OwnerCannotJoinError
from backend.logbook_server.tokens import TOKEN_HEX_LENGTH, encode_token, new_token


class TestShareManager:
    """Tests for ShareManager."""

    @pytest.fixture
    def shares(self, store):
        return ShareManager(store, AccessResolver(store))

    async def _setup(self, store):
        """Owner with a log plus two other users."""
        owner = await store.create_user("owner", None, "hash")
        alice = await store.create_user("alice", None, "hash")
        bob = await store.create_user("bob", None, "hash")
        log = await store.create_log(owner.id, "Pushups", [])
        return owner, alice, bob, log

    @pytest.mark.asyncio
    async def test_issue_token(self, store, shares):
        owner, _, _, log = await self._setup(store)

        token = await shares.issue_token(log.id, owner.id)

        assert len(token) == TOKEN_HEX_LENGTH
        assert token == token.lower()

    @pytest.mark.asyncio
    async def test_issue_token_non_owner(self, store, shares):
        """Members and strangers cannot issue tokens."""
        owner, alice, _, log = await self._setup(store)
        await shares.join(await shares.issue_token(log.id, owner.id), alice.id)

        with pytest.raises(NotFoundError):
            await shares.issue_token(log.id, alice.id)

    @pytest.mark.asyncio
    async def test_join(self, store, shares):
        owner, alice, _, log = await self._setup(store)
        token = await shares.issue_token(log.id, owner.id)

        result = await shares.join(token, alice.id)

        assert result.created is True
        assert result.log_id == log.id
        assert result.log_name == "Pushups"
        assert await store.membership_exists(log.id, alice.id)

    @pytest.mark.asyncio
    async def test_join_twice_is_idempotent(self, store, shares):
        """Second join succeeds without a duplicate membership."""
        owner, alice, _, log = await self._setup(store)
        token = await shares.issue_token(log.id, owner.id)

        first = await shares.join(token, alice.id)
        second = await shares.join(token, alice.id)

        assert first.created is True
        assert second.created is False
        assert len(await shares.list_members(log.id, owner.id)) == 1

    @pytest.mark.asyncio
    async def test_owner_cannot_join(self, store, shares):
        owner, _, _, log = await self._setup(store)
        token = await shares.issue_token(log.id, owner.id)

        with pytest.raises(OwnerCannotJoinError):
            await shares.join(token, owner.id)

        assert await shares.list_members(log.id, owner.id) == []

    @pytest.mark.asyncio
    async def test_reissue_invalidates_old_token(self, store, shares):
        owner, alice, _, log = await self._setup(store)
        old = await shares.issue_token(log.id, owner.id)
        new = await shares.issue_token(log.id, owner.id)
        assert old != new

        with pytest.raises(NotFoundError):
            await shares.join(old, alice.id)

        assert (await shares.join(new, alice.id)).created is True

    @pytest.mark.asyncio
    async def test_revoke(self, store, shares):
        owner, alice, _, log = await self._setup(store)
        token = await shares.issue_token(log.id, owner.id)

        await shares.revoke_token(log.id, owner.id)

        with pytest.raises(NotFoundError):
            await shares.join(token, alice.id)

    @pytest.mark.asyncio
    async def test_revoke_twice(self, store, shares):
        """Revoking an already-cleared token is fine."""
        owner, _, _, log = await self._setup(store)

        await shares.revoke_token(log.id, owner.id)
        await shares.revoke_token(log.id, owner.id)

    @pytest.mark.asyncio
    async def test_revoke_keeps_memberships(self, store, shares):
        owner, alice, _, log = await self._setup(store)
        await shares.join(await shares.issue_token(log.id, owner.id), alice.id)

        await shares.revoke_token(log.id, owner.id)

        assert await store.membership_exists(log.id, alice.id)

    @pytest.mark.asyncio
    async def test_revoke_non_owner(self, store, shares):
        _, alice, _, log = await self._setup(store)

        with pytest.raises(NotFoundError):
            await shares.revoke_token(log.id, alice.id)

    @pytest.mark.asyncio
    async def test_join_malformed_token(self, store, shares):
        _, alice, _, _ = await self._setup(store)

        with pytest.raises(NotFoundError):
            await shares.join("not-hex", alice.id)

    @pytest.mark.asyncio
    async def test_join_unknown_token(self, store, shares):
        _, alice, _, _ = await self._setup(store)

        with pytest.raises(NotFoundError):
            await shares.join(encode_token(new_token()), alice.id)

    @pytest.mark.asyncio
    async def test_inspect_token(self, store, shares):
        """Inspection describes the log from the caller's side."""
        owner, alice, _, log = await self._setup(store)
        token = await shares.issue_token(log.id, owner.id)

        info = await shares.inspect_token(token, alice.id)

        assert info.log_id == log.id
        assert info.log_name == "Pushups"
        assert info.owner_name == "owner"
        assert info.caller_is_owner is False
        assert info.caller_already_member is False

    @pytest.mark.asyncio
    async def test_inspect_does_not_join(self, store, shares):
        owner, alice, _, log = await self._setup(store)
        token = await shares.issue_token(log.id, owner.id)

        await shares.inspect_token(token, alice.id)

        assert not await store.membership_exists(log.id, alice.id)

    @pytest.mark.asyncio
    async def test_inspect_as_owner_and_member(self, store, shares):
        owner, alice, _, log = await self._setup(store)
        token = await shares.issue_token(log.id, owner.id)
        await shares.join(token, alice.id)

        as_owner = await shares.inspect_token(token, owner.id)
        as_member = await shares.inspect_token(token, alice.id)

        assert as_owner.caller_is_owner is True
        assert as_owner.caller_already_member is False
        assert as_member.caller_already_member is True

    @pytest.mark.asyncio
    async def test_inspect_invalid_token(self, store, shares):
        _, alice, _, _ = await self._setup(store)

        with pytest.raises(NotFoundError):
            await shares.inspect_token(encode_token(new_token()), alice.id)

    @pytest.mark.asyncio
    async def test_list_members_in_join_order(self, store, shares):
        owner, alice, bob, log = await self._setup(store)
        token = await shares.issue_token(log.id, owner.id)
        await shares.join(token, alice.id)
        await shares.join(token, bob.id)

        members = await shares.list_members(log.id, owner.id)

        assert [m.username for m in members] == ["alice", "bob"]

    @pytest.mark.asyncio
    async def test_list_members_non_owner(self, store, shares):
        owner, alice, _, log = await self._setup(store)
        await shares.join(await shares.issue_token(log.id, owner.id), alice.id)

        with pytest.raises(NotFoundError):
            await shares.list_members(log.id, alice.id)

    @pytest.mark.asyncio
    async def test_remove_member(self, store, shares):
        owner, alice, _, log = await self._setup(store)
        await shares.join(await shares.issue_token(log.id, owner.id), alice.id)
        [membership] = await shares.list_members(log.id, owner.id)

        await shares.remove_member(log.id, owner.id, membership.id)

        assert not await store.membership_exists(log.id, alice.id)

    @pytest.mark.asyncio
    async def test_remove_missing_member(self, store, shares):
        owner, _, _, log = await self._setup(store)

        with pytest.raises(NotFoundError):
            await shares.remove_member(log.id, owner.id, "no-such-share")

    @pytest.mark.asyncio
    async def test_member_cannot_remove_members(self, store, shares):
        owner, alice, bob, log = await self._setup(store)
        token = await shares.issue_token(log.id, owner.id)
        await shares.join(token, alice.id)
        await shares.join(token, bob.id)
        bob_membership = (await shares.list_members(log.id, owner.id))[1]

        with pytest.raises(NotFoundError):
            await shares.remove_member(log.id, alice.id, bob_membership.id)
