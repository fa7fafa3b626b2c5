"""
Access module for the Logbook server - ownership, membership and sharing.

This module handles:
- Resolving an identity's access to a log (owner / member / none)
- Share token issue, revocation, inspection and redemption
- Membership listing and removal

Invariants:
    - Owner-only operations fail with NotFoundError for everyone else
    - The owner is never a member
"""

from .acl import AccessGrant, AccessResolver, Permission
from .sharing import JoinResult, ShareInfo, ShareManager

__all__ = [
    "AccessGrant",
    "AccessResolver",
    "Permission",
    "ShareManager",
    "ShareInfo",
    "JoinResult",
]
