"""
Share link tokens.

Format: lowercase hex of N random bytes from the OS CSPRNG (default 32
bytes -> 64 chars). Tokens are opaque capabilities: there is nothing to
decode, and lookups are exact-match only.
"""

import re
import secrets

from app.config import get_settings

_HEX_RE = re.compile(r"^[0-9a-f]+$")


def generate_share_token() -> str:
    """Create a new unguessable share token."""
    return secrets.token_hex(get_settings().share_token_bytes)


def is_well_formed_token(raw: str | None) -> bool:
    """Cheap shape check so garbage never reaches the database."""
    if not raw:
        return False
    if len(raw) != get_settings().share_token_bytes * 2:
        return False
    return bool(_HEX_RE.match(raw))
