"""
Unit tests for account registration, login and profile changes.

Tests cover:
- Registration gate and input checks
- Case-insensitive login
- Password and email changes
"""

import pytest

from backend.logbook_server.auth import (
    AccountService,
    SessionResolver,
    hash_password,
    verify_password,
)
from backend.logbook_server.errors import (
    ConflictError,
    ForbiddenError,
    UnauthenticatedError,
    ValidationError,
)


class TestPasswordHashing:
    def test_hash_and_verify(self):
        hashed = hash_password("correct horse")
        assert hashed != "correct horse"
        assert verify_password("correct horse", hashed)
        assert not verify_password("wrong horse", hashed)

    def test_verify_against_garbage_hash(self):
        """A corrupt stored hash fails verification instead of raising."""
        assert not verify_password("anything", "not-a-bcrypt-hash")


class TestAccountService:
    """Tests for AccountService."""

    @pytest.fixture
    def sessions(self, store, clock):
        return SessionResolver(store, clock=clock)

    @pytest.fixture
    def accounts(self, store, sessions):
        return AccountService(store, sessions, allow_registration=True)

    @pytest.mark.asyncio
    async def test_register(self, accounts, sessions):
        """Registration creates the user and logs it in."""
        identity, token = await accounts.register("alice", "password1", "alice@example.com")

        assert identity.username == "alice"
        assert identity.email == "alice@example.com"
        assert (await sessions.resolve(token)).identity == identity

    @pytest.mark.asyncio
    async def test_registration_disabled(self, store, sessions):
        accounts = AccountService(store, sessions)

        with pytest.raises(ForbiddenError) as exc_info:
            await accounts.register("alice", "password1")
        assert exc_info.value.code == "REGISTRATION_DISABLED"

    @pytest.mark.asyncio
    async def test_username_trimmed(self, accounts):
        identity, _ = await accounts.register("  alice  ", "password1")
        assert identity.username == "alice"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("username", ["", "   ", "x" * 31])
    async def test_bad_username(self, accounts, username):
        with pytest.raises(ValidationError):
            await accounts.register(username, "password1")

    @pytest.mark.asyncio
    async def test_short_password(self, accounts):
        with pytest.raises(ValidationError):
            await accounts.register("alice", "short")

    @pytest.mark.asyncio
    async def test_duplicate_username_any_case(self, accounts):
        await accounts.register("alice", "password1")

        with pytest.raises(ConflictError):
            await accounts.register("ALICE", "password1")

    @pytest.mark.asyncio
    async def test_duplicate_email(self, accounts):
        await accounts.register("alice", "password1", "shared@example.com")

        with pytest.raises(ConflictError) as exc_info:
            await accounts.register("bob", "password1", "shared@example.com")
        assert "email" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_blank_email_stored_as_none(self, accounts):
        """Blank emails do not collide with each other."""
        alice, _ = await accounts.register("alice", "password1", "  ")
        bob, _ = await accounts.register("bob", "password1", "")

        assert alice.email is None
        assert bob.email is None

    @pytest.mark.asyncio
    async def test_login_case_insensitive(self, accounts):
        registered, _ = await accounts.register("Alice", "password1")

        identity, token = await accounts.login("alice", "password1")

        assert identity.id == registered.id
        assert identity.username == "Alice"
        assert token

    @pytest.mark.asyncio
    async def test_accented_usernames_fold_together(self, accounts):
        registered, _ = await accounts.register("Émile", "password1")

        with pytest.raises(ConflictError):
            await accounts.register("émile", "password1")

        identity, _ = await accounts.login("émile", "password1")
        assert identity.id == registered.id

    @pytest.mark.asyncio
    async def test_login_wrong_password(self, accounts):
        await accounts.register("alice", "password1")

        with pytest.raises(UnauthenticatedError):
            await accounts.login("alice", "password2")

    @pytest.mark.asyncio
    async def test_login_unknown_user(self, accounts):
        """Unknown user and wrong password look the same."""
        with pytest.raises(UnauthenticatedError) as exc_info:
            await accounts.login("nobody", "password1")
        assert exc_info.value.message == "invalid username or password"

    @pytest.mark.asyncio
    async def test_change_password(self, accounts):
        identity, _ = await accounts.register("alice", "password1")

        await accounts.change_password(identity, "password1", "password2")

        await accounts.login("alice", "password2")
        with pytest.raises(UnauthenticatedError):
            await accounts.login("alice", "password1")

    @pytest.mark.asyncio
    async def test_change_password_wrong_current(self, accounts):
        identity, _ = await accounts.register("alice", "password1")

        with pytest.raises(ForbiddenError) as exc_info:
            await accounts.change_password(identity, "nope-nope", "password2")
        assert exc_info.value.code == "WRONG_PASSWORD"

    @pytest.mark.asyncio
    async def test_change_password_too_short(self, accounts):
        identity, _ = await accounts.register("alice", "password1")

        with pytest.raises(ValidationError):
            await accounts.change_password(identity, "password1", "short")

    @pytest.mark.asyncio
    async def test_change_email(self, accounts):
        identity, _ = await accounts.register("alice", "password1")

        updated = await accounts.change_email(identity, " alice@example.com ")
        assert updated.email == "alice@example.com"

        cleared = await accounts.change_email(updated, "")
        assert cleared.email is None

    @pytest.mark.asyncio
    async def test_change_email_conflict(self, accounts):
        await accounts.register("alice", "password1", "alice@example.com")
        bob, _ = await accounts.register("bob", "password1")

        with pytest.raises(ConflictError):
            await accounts.change_email(bob, "alice@example.com")
