"""Time utilities for consistent timestamp handling."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def from_unix(seconds: int | float | str | None) -> datetime:
    """Convert a unix timestamp (as sent by WhatsApp gateways) to aware UTC.

    Missing or unparseable values fall back to the current time.
    """
    try:
        return datetime.fromtimestamp(float(seconds), tz=timezone.utc)  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError, OSError):
        return utc_now()
