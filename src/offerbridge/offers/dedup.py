"""Time-bounded window of recently seen message ids."""

import time
from collections import OrderedDict
from typing import Callable

DEFAULT_TTL_SECONDS = 60.0
DEFAULT_CAPACITY = 1024


class SeenMessageWindow:
    """Fixed-capacity, insertion-ordered map of message id -> expiry.

    Expiry is lazy: expired ids are dropped from the front whenever a new id
    is checked, so no timer per message is needed. When more than `capacity`
    ids arrive within one TTL, the oldest are evicted early.
    Not thread-safe; owned by the supervisor's dispatch thread.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        capacity: int = DEFAULT_CAPACITY,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._ttl = ttl_seconds
        self._capacity = capacity
        self._clock = clock
        self._entries: "OrderedDict[str, float]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, message_id: object) -> bool:
        expires_at = self._entries.get(message_id)  # type: ignore[arg-type]
        return expires_at is not None and expires_at > self._clock()

    def _evict_expired(self, now: float) -> None:
        while self._entries:
            oldest_id, expires_at = next(iter(self._entries.items()))
            if expires_at > now:
                break
            del self._entries[oldest_id]

    def check_and_add(self, message_id: str) -> bool:
        """Record `message_id`. Returns True if it was not seen within the TTL."""
        now = self._clock()
        self._evict_expired(now)

        if message_id in self._entries:
            return False

        self._entries[message_id] = now + self._ttl
        while len(self._entries) > self._capacity:
            self._entries.popitem(last=False)
        return True
