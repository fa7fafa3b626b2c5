"""
Logbook Server - personal event logs with typed fields and share links.

This package implements:
- User-defined field schemas per log (text, number, boolean)
- Timestamped entries validated against the log's schema at write time
- Cookie sessions for identity
- Share tokens that turn other users into members of a log

Architecture:
    HTTP (FastAPI) -> session middleware -> AccountService / LogService /
    ShareManager -> AccessResolver -> LogbookStore (SQLite)

Invariants:
    - Every log has exactly one owner; members can read and write entries
    - A log's share token is unique and at most one is live per log
    - Entry values are validated against the schema current at write time
    - Anyone without access to a log gets NotFound, never Forbidden

How to change safely:
    - Schema changes never rewrite stored entries
    - Changing token size invalidates every session and share link

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
