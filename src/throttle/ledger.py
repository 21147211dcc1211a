"""Attempt ledger for a single throttler."""

import threading
from collections import deque
from collections.abc import Hashable, Iterator
from contextlib import contextmanager

import structlog

logger = structlog.get_logger()

_ALL = object()


class AttemptLedger:
    """Ordered record of ``(key, timestamp_ms)`` attempts, newest first.

    Entries are only ever added at the front, so the oldest entries sit at the
    back of the deque and pruning pops from the tail: O(k) for k expired
    entries. Per-key lookups are a linear scan, which is fine while the ledger
    stays near ``attempts_threshold`` entries per key.

    Every method takes the ledger lock. Callers that need several operations to
    behave as one (prune, evaluate, append) hold ``transaction()`` around them;
    the lock is reentrant so the individual methods can still be used inside.
    """

    def __init__(self, attempt_ttl_ms: int):
        """Initialize an empty ledger.

        Args:
            attempt_ttl_ms: Age after which an attempt is no longer counted
        """
        self.attempt_ttl_ms = attempt_ttl_ms
        self._entries: deque[tuple[Hashable, int]] = deque()
        self._lock = threading.RLock()

    @contextmanager
    def transaction(self) -> Iterator["AttemptLedger"]:
        """Hold the ledger lock for a compound operation."""
        with self._lock:
            yield self

    def prune(self, now_ms: int) -> int:
        """Drop every attempt older than ``now_ms - attempt_ttl_ms``.

        Returns:
            Number of entries removed
        """
        cutoff = now_ms - self.attempt_ttl_ms
        removed = 0
        with self._lock:
            while self._entries and self._entries[-1][1] < cutoff:
                self._entries.pop()
                removed += 1
        if removed:
            logger.debug("Pruned expired attempts", count=removed)
        return removed

    def append(self, key: Hashable, timestamp_ms: int) -> None:
        """Record an attempt as the newest entry.

        A timestamp older than the current newest entry is raised to match it,
        so the ledger stays ordered even if the clock steps backwards.
        """
        with self._lock:
            if self._entries:
                timestamp_ms = max(timestamp_ms, self._entries[0][1])
            self._entries.appendleft((key, timestamp_ms))

    def attempts_for(self, key: Hashable) -> list[int]:
        """Timestamps recorded for ``key``, newest first."""
        with self._lock:
            return [timestamp for k, timestamp in self._entries if k == key]

    def count(self, key: Hashable = _ALL) -> int:
        """Number of entries for ``key``, or all entries when omitted."""
        with self._lock:
            if key is _ALL:
                return len(self._entries)
            return sum(1 for k, _ in self._entries if k == key)

    def clear(self, key: Hashable = _ALL) -> None:
        """Remove the entries for ``key``, or every entry when omitted."""
        with self._lock:
            if key is _ALL:
                self._entries.clear()
            else:
                self._entries = deque(
                    entry for entry in self._entries if entry[0] != key
                )

    def snapshot(self) -> list[tuple[Hashable, int]]:
        """Copy of the entries, newest first."""
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        return self.count()
