"""
Random token source shared by sessions and share links.

Tokens are TOKEN_BYTES cryptographically random bytes. They are stored raw
and shown to clients as lowercase hex.
"""

from __future__ import annotations

import re
import secrets

TOKEN_BYTES = 32
TOKEN_HEX_LENGTH = TOKEN_BYTES * 2

# bytes.fromhex skips whitespace, so the shape is checked up front.
_TOKEN_RE = re.compile(rf"[0-9a-fA-F]{{{TOKEN_HEX_LENGTH}}}")


def new_token() -> bytes:
    return secrets.token_bytes(TOKEN_BYTES)


def encode_token(token: bytes) -> str:
    return token.hex()


def decode_token(presented: str | None) -> bytes | None:
    """Decode a presented hex token.

    Returns:
        Token bytes, or None unless the value is exactly TOKEN_HEX_LENGTH
        hex digits with nothing else around or between them
    """
    if not presented or _TOKEN_RE.fullmatch(presented) is None:
        return None
    return bytes.fromhex(presented)
