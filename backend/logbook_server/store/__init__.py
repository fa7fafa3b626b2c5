"""
Store module for the Logbook server - the relational persistence collaborator.

This module handles:
- Users, sessions, logs, memberships and entries in one SQLite database
- Translating uniqueness violations into ConflictError
- Cascading log deletion to entries and memberships

Invariants:
    - The store performs no access control; callers resolve access first
    - Each operation uses a short-lived connection
"""

from .sqlite_store import EntryRecord, LogbookStore, LogRecord, MembershipRecord, UserRecord

__all__ = [
    "LogbookStore",
    "UserRecord",
    "LogRecord",
    "MembershipRecord",
    "EntryRecord",
]
