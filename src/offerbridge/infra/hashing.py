"""Hashing utilities for log-safe identifiers.

Chat identifiers (JIDs) and message ids are never logged in clear. Logs carry
a truncated SHA-256 instead, stable enough to correlate lines for the same
conversation without exposing it.
"""

import hashlib


def hash_identifier(value: str, length: int = 12) -> str:
    """Create non-reversible hash for logging. Returns first `length` chars of sha256."""
    return hashlib.sha256(value.encode()).hexdigest()[:length]
