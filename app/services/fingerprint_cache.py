"""
Process-local, content-addressed cache of analysis results.

Entries are keyed by a fingerprint of the normalized input plus the owning
user, so identical uploads from different accounts never share a result.
The map is bounded by capacity (oldest insertion evicted first) and an
optional TTL. ``hold`` serializes concurrent computations of one fingerprint.
"""

from __future__ import annotations

import asyncio
import hashlib
import threading
import time
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Generic, Optional, TypeVar

T = TypeVar("T")


def normalize_text(text: str) -> str:
    """Canonical form used for hashing plain-text reports."""
    return "\n".join(line.rstrip() for line in text.replace("\r\n", "\n").split("\n")).strip()


def compute_fingerprint(
    *,
    user_id: str,
    content: Optional[bytes] = None,
    text: Optional[str] = None,
    cache_key: Optional[str] = None,
) -> str:
    """Return a stable sha256 identifying an input+user pair."""
    digest = hashlib.sha256()
    if cache_key:
        digest.update(b"key:")
        digest.update(cache_key.encode("utf-8"))
    elif text is not None:
        digest.update(b"text:")
        digest.update(normalize_text(text).encode("utf-8"))
    elif content is not None:
        digest.update(b"bytes:")
        digest.update(content)
    else:
        raise ValueError("A fingerprint needs content, text, or a cache key.")
    digest.update(b"\x00user:")
    digest.update(user_id.encode("utf-8"))
    return digest.hexdigest()


@dataclass(slots=True)
class CacheEntry(Generic[T]):
    fingerprint: str
    value: T
    inserted_at: float


@dataclass(slots=True)
class _InFlight:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class FingerprintCache(Generic[T]):
    """Thread-safe bounded map from fingerprint to a computed result."""

    def __init__(
        self,
        *,
        capacity: int = 20,
        ttl_seconds: Optional[float] = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry[T]]" = OrderedDict()
        self._inflight: dict[str, _InFlight] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, fingerprint: str) -> Optional[T]:
        with self._lock:
            entry = self._entries.get(fingerprint)
            if entry is None:
                return None
            if self._is_expired(entry):
                del self._entries[fingerprint]
                return None
            return entry.value

    def put(self, fingerprint: str, value: T) -> None:
        with self._lock:
            # Re-inserting moves the entry to the young end of the eviction order.
            self._entries.pop(fingerprint, None)
            self._entries[fingerprint] = CacheEntry(
                fingerprint=fingerprint, value=value, inserted_at=self._clock()
            )
            self._purge_expired()
            while len(self._entries) > self._capacity:
                self._entries.popitem(last=False)

    def invalidate(self, fingerprint: str) -> None:
        with self._lock:
            self._entries.pop(fingerprint, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    @asynccontextmanager
    async def hold(self, fingerprint: str) -> AsyncIterator[None]:
        """Allow at most one holder per fingerprint at a time."""
        with self._lock:
            inflight = self._inflight.get(fingerprint)
            if inflight is None:
                inflight = self._inflight[fingerprint] = _InFlight()
            inflight.holders += 1
        try:
            async with inflight.lock:
                yield
        finally:
            with self._lock:
                inflight.holders -= 1
                if inflight.holders == 0:
                    self._inflight.pop(fingerprint, None)

    def _is_expired(self, entry: CacheEntry[T]) -> bool:
        if self._ttl_seconds is None:
            return False
        return self._clock() - entry.inserted_at >= self._ttl_seconds

    def _purge_expired(self) -> None:
        if self._ttl_seconds is None:
            return
        # Entries are in insertion order, so expired ones sit at the front.
        while self._entries:
            oldest = next(iter(self._entries.values()))
            if not self._is_expired(oldest):
                break
            self._entries.popitem(last=False)


__all__ = ["CacheEntry", "FingerprintCache", "compute_fingerprint", "normalize_text"]
