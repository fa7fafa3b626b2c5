"""
Log and entry operations.

Every operation takes the caller's identity id explicitly and resolves access
before touching a log or its entries:
- Log reads and entry reads/writes need owner or member access
- Log renames, schema changes and deletes need ownership

Invariants:
    - Schemas are validated before they are stored; a rejected schema
      leaves the log untouched
    - Entry values are validated against the schema as read in the same
      access check; stored values are never migrated afterwards
    - The share token is only shown to the owner
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from ..access import AccessResolver, Permission
from ..errors import NotFoundError, ValidationError
from ..schema import FieldDef, schema_from_list, schema_to_list, validate_schema, validate_values
from ..store import EntryRecord, LogbookStore, LogRecord
from ..tokens import encode_token

logger = logging.getLogger(__name__)

MAX_LOG_NAME_LENGTH = 100


@dataclass
class LogView:
    """A log as seen by one identity."""

    id: str
    name: str
    fields: list[FieldDef] = field(default_factory=list)
    is_owner: bool = False
    share_token: str | None = None
    created_at: int = 0
    updated_at: int = 0

    @classmethod
    def from_record(cls, log: LogRecord, is_owner: bool) -> LogView:
        share_token = None
        if is_owner and log.share_token is not None:
            share_token = encode_token(log.share_token)
        return cls(
            id=log.id,
            name=log.name,
            fields=schema_from_list(log.fields),
            is_owner=is_owner,
            share_token=share_token,
            created_at=log.created_at,
            updated_at=log.updated_at,
        )


def _clean_log_name(name: str) -> str:
    name = (name or "").strip()
    if not name or len(name) > MAX_LOG_NAME_LENGTH:
        raise ValidationError(
            f"name must be 1-{MAX_LOG_NAME_LENGTH} characters",
            field_name="name",
        )
    return name


class LogService:
    """Log CRUD plus entry CRUD, gated by the AccessResolver."""

    def __init__(self, store: LogbookStore, access: AccessResolver) -> None:
        self.store = store
        self.access = access

    # --- Logs ---

    async def create_log(
        self,
        identity_id: str,
        name: str,
        fields: list[FieldDef] | None = None,
    ) -> LogView:
        """Create a log owned by the caller.

        Raises:
            ValidationError: Bad name or schema
            ConflictError: Caller already has a log with that name
        """
        name = _clean_log_name(name)
        fields = fields or []
        validate_schema(fields)

        log = await self.store.create_log(identity_id, name, schema_to_list(fields))
        logger.info("Log created", extra={"log_id": log.id, "owner_id": identity_id})
        return LogView.from_record(log, is_owner=True)

    async def list_logs(self, identity_id: str) -> list[LogView]:
        """Logs the caller owns or has joined, ordered by name.

        Share tokens are omitted from listings.
        """
        rows = await self.store.list_logs_for_user(identity_id)
        views = []
        for log, is_owner in rows:
            view = LogView.from_record(log, is_owner)
            view.share_token = None
            views.append(view)
        return views

    async def get_log(self, log_id: str, identity_id: str) -> LogView:
        grant = await self.access.resolve_access(log_id, identity_id)
        log = await self.store.get_log(log_id)
        if log is None:
            raise NotFoundError("log")
        return LogView.from_record(log, grant.is_owner)

    async def update_log(
        self,
        log_id: str,
        identity_id: str,
        name: str,
        fields: list[FieldDef] | None = None,
    ) -> LogView:
        """Rename a log and replace its schema. Owner only.

        Existing entries keep their stored values, including values for
        fields the new schema no longer has.

        Raises:
            ValidationError: Bad name or schema
            NotFoundError: Caller does not own the log
            ConflictError: Caller already has another log with that name
        """
        name = _clean_log_name(name)
        fields = fields or []
        validate_schema(fields)

        log = await self.store.update_log(log_id, identity_id, name, schema_to_list(fields))
        if log is None:
            raise NotFoundError("log")
        return LogView.from_record(log, is_owner=True)

    async def delete_log(self, log_id: str, identity_id: str) -> None:
        """Delete a log with its entries and memberships. Owner only."""
        if not await self.store.delete_log(log_id, identity_id):
            raise NotFoundError("log")
        logger.info("Log deleted", extra={"log_id": log_id})

    # --- Entries ---

    async def create_entry(
        self,
        log_id: str,
        identity_id: str,
        values: dict[str, Any] | None,
        occurred_at: int | None = None,
    ) -> EntryRecord:
        """Record an entry, validated against the log's current schema.

        Args:
            log_id: Target log
            identity_id: Author
            values: Field name to raw value
            occurred_at: When the event happened (Unix ms); defaults to now

        Raises:
            NotFoundError: Caller has no access to the log
            ValidationError: Values do not conform to the schema
        """
        values = values or {}
        grant = await self.access.check_permission(log_id, identity_id, Permission.WRITE)
        validate_values(grant.schema, values)
        return await self.store.create_entry(log_id, identity_id, values, occurred_at)

    async def update_entry(
        self,
        log_id: str,
        entry_id: str,
        identity_id: str,
        values: dict[str, Any] | None,
        occurred_at: int | None,
    ) -> EntryRecord:
        """Replace an entry's values and occurred_at.

        Raises:
            ValidationError: occurred_at missing or values invalid
            NotFoundError: No access to the log, or no such entry in it
        """
        if occurred_at is None:
            raise ValidationError("occurred_at is required", field_name="occurred_at")

        values = values or {}
        grant = await self.access.check_permission(log_id, identity_id, Permission.WRITE)
        validate_values(grant.schema, values)

        entry = await self.store.update_entry(entry_id, log_id, values, occurred_at)
        if entry is None:
            raise NotFoundError("entry")
        return entry

    async def delete_entry(self, log_id: str, entry_id: str, identity_id: str) -> None:
        await self.access.check_permission(log_id, identity_id, Permission.WRITE)
        if not await self.store.delete_entry(entry_id, log_id):
            raise NotFoundError("entry")

    async def list_entries(self, log_id: str, identity_id: str) -> list[EntryRecord]:
        await self.access.check_permission(log_id, identity_id, Permission.READ)
        return await self.store.list_entries(log_id)
