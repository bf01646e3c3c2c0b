# dedup_cache.py

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Tuple

logger = logging.getLogger(__name__)

DedupKey = Tuple[int, str]


class CommentDedupCache(ABC):
    """
    Remembers recently posted (ticket number, comment content) pairs so a
    retried tool call cannot post the same comment twice.
    Swap in a shared implementation when several processes serve the agent.
    """

    @abstractmethod
    def check_and_mark(self, key: DedupKey) -> bool:
        """
        Returns True if `key` was marked within the duplicate window (the caller
        should skip the write). Otherwise marks it now and returns False.
        """

    @abstractmethod
    def forget(self, key: DedupKey) -> None:
        """Drops a mark, e.g. after the write it guarded failed."""


class InMemoryCommentDedupCache(CommentDedupCache):
    """Process-local, thread-safe dedup cache with a time window and opportunistic purge."""

    def __init__(self, window_seconds: float = 5.0, purge_after_seconds: float = 60.0,
                 clock: Callable[[], float] = time.monotonic):
        self.window_seconds = window_seconds
        self.purge_after_seconds = purge_after_seconds
        self._clock = clock
        self._seen: Dict[DedupKey, float] = {}
        self._lock = threading.Lock()
        logger.info(f"Comment dedup cache initialized: window={window_seconds}s, purge after {purge_after_seconds}s")

    def check_and_mark(self, key: DedupKey) -> bool:
        now = self._clock()
        with self._lock:
            last_seen = self._seen.get(key)
            if last_seen is not None and now - last_seen < self.window_seconds:
                logger.debug(f"Duplicate comment for ticket #{key[0]} suppressed (age: {now - last_seen:.1f}s)")
                return True
            self._seen[key] = now
            self._purge_locked(now)
            return False

    def forget(self, key: DedupKey) -> None:
        with self._lock:
            self._seen.pop(key, None)

    def purge(self) -> int:
        with self._lock:
            return self._purge_locked(self._clock())

    def _purge_locked(self, now: float) -> int:
        stale = [k for k, ts in self._seen.items() if now - ts > self.purge_after_seconds]
        for k in stale:
            del self._seen[k]
        if stale:
            logger.debug(f"Purged {len(stale)} stale dedup entries")
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)
