"""Shared utilities (datetime, ID generation, retry policy)."""

from crossstore.shared.utils.datetime import utc_now
from crossstore.shared.utils.generators import generate_cuid, generate_owner_token
from crossstore.shared.utils.retry import RetryPolicy

__all__ = [
    "RetryPolicy",
    "generate_cuid",
    "generate_owner_token",
    "utc_now",
]
