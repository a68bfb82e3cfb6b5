"""Identifier generators: CUID2 row ids and lock owner tokens."""

from cuid2 import cuid_wrapper

_next_cuid = cuid_wrapper()

# Prefix makes lock values recognisable when inspecting Redis.
OWNER_TOKEN_PREFIX = "lk_"


def generate_cuid() -> str:
    """Collision-resistant id for mirror rows."""
    return str(_next_cuid())


def generate_owner_token() -> str:
    """Fresh token identifying one lock acquisition; never reused across acquisitions."""
    return f"{OWNER_TOKEN_PREFIX}{generate_cuid()}"
