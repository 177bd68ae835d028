"""
Global state management for SunoBridge.
Holds in-memory state that needs to be shared across modules.
"""

import asyncio
import hashlib
import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Dict, Optional

from . import constants
from .console import debug_print


def identity_key(cookie: str) -> str:
    """Registry key for a raw cookie string. The credential itself is never kept as a key."""
    return hashlib.sha256(str(cookie or "").encode("utf-8")).hexdigest()


class SessionRegistry:
    """
    Maps an identity (raw cookie string) to an initialized session handle.

    Entries are created on miss (once per identity, even with concurrent callers), expire after
    `ttl_seconds` without use, and the least recently used entry is evicted beyond `max_entries`.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = constants.DEFAULT_SESSION_CACHE_TTL_SECONDS,
        max_entries: int = constants.DEFAULT_SESSION_CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = float(ttl_seconds)
        self.max_entries = max(1, int(max_entries))
        self._clock = clock
        self._entries: "OrderedDict[str, tuple[Any, float]]" = OrderedDict()
        self._locks: Dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, cookie: object) -> bool:
        return identity_key(str(cookie)) in self._entries

    def configure(self, *, ttl_seconds: Optional[float] = None, max_entries: Optional[int] = None) -> None:
        if ttl_seconds is not None:
            self.ttl_seconds = float(ttl_seconds)
        if max_entries is not None:
            self.max_entries = max(1, int(max_entries))

    def _expired(self, last_used: float, now: float) -> bool:
        return self.ttl_seconds > 0 and (now - last_used) > self.ttl_seconds

    def evict_expired(self) -> int:
        now = self._clock()
        stale = [key for key, (_, last_used) in self._entries.items() if self._expired(last_used, now)]
        for key in stale:
            self._entries.pop(key, None)
            self._locks.pop(key, None)
        if stale:
            debug_print(f"🧹 Evicted {len(stale)} idle session(s) from registry")
        return len(stale)

    def _evict_overflow(self) -> None:
        while len(self._entries) > self.max_entries:
            key, _ = self._entries.popitem(last=False)
            self._locks.pop(key, None)
            debug_print("🧹 Session registry full, evicted least recently used session")

    def get(self, cookie: str) -> Optional[Any]:
        self.evict_expired()
        key = identity_key(cookie)
        entry = self._entries.get(key)
        if entry is None:
            return None
        self._entries[key] = (entry[0], self._clock())
        self._entries.move_to_end(key)
        return entry[0]

    async def get_or_create(self, cookie: str, factory: Callable[[str], Awaitable[Any]]) -> Any:
        cached = self.get(cookie)
        if cached is not None:
            return cached

        key = identity_key(cookie)
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            cached = self.get(cookie)
            if cached is not None:
                return cached
            try:
                handle = await factory(cookie)
            except BaseException:
                # A failed identity never gets an entry, so its lock must not outlive the attempt
                if key not in self._entries:
                    self._locks.pop(key, None)
                raise
            self._entries[key] = (handle, self._clock())
            self._entries.move_to_end(key)
            self._evict_overflow()
            return handle

    def clear(self) -> None:
        self._entries.clear()
        self._locks.clear()


# Process-wide registry of initialized Suno sessions
session_registry = SessionRegistry()
