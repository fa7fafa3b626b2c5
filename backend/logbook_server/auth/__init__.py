"""
Auth module for the Logbook server.

This module handles:
- Session credential resolution, issue and logout
- Account registration, login and profile changes

Invariants:
    - The resolved identity is passed explicitly to every other component
    - Bad credentials resolve to ANONYMOUS instead of raising
"""

from .accounts import AccountService, hash_password, verify_password
from .sessions import ANONYMOUS, Anonymous, Identity, SessionResolution, SessionResolver

__all__ = [
    "ANONYMOUS",
    "Anonymous",
    "Identity",
    "SessionResolution",
    "SessionResolver",
    "AccountService",
    "hash_password",
    "verify_password",
]
