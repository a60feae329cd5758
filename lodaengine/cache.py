# lodaengine/cache.py
"""
Single-flight evaluation cache.

Results are keyed by ``(program_id, input)`` and stored as
:class:`CacheEntry` ``(value, steps)``. The first thread to ask for a key
computes it; concurrent requesters for the same key block on a
:class:`concurrent.futures.Future` and reuse that result. Failures are
handed to every waiter and are not cached, so a later request computes
again.

A thread that asks for a key it is itself computing would wait forever;
that is reported as :class:`~lodaengine.errors.InternalError` instead.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from dataclasses import asdict, dataclass
from typing import Callable, Dict, Optional, Tuple

from lodaengine.errors import InternalError

logger = logging.getLogger(__name__)

CacheKey = Tuple[int, int]


@dataclass(frozen=True)
class CacheEntry:
    value: int
    steps: int


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    waits: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class EvaluationCache:
    """Memo of program results shared by every evaluation of a session."""

    def __init__(self) -> None:
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._inflight: Dict[CacheKey, Tuple[Future, int]] = {}
        self._lock = threading.Lock()
        self.stats = CacheStats()

    def get(self, key: CacheKey) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def get_or_compute(
        self,
        key: CacheKey,
        compute: Callable[[], CacheEntry],
    ) -> CacheEntry:
        """Return the entry for *key*, computing it at most once at a time."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                self.stats.hits += 1
                return entry
            pending = self._inflight.get(key)
            if pending is None:
                future: Future = Future()
                self._inflight[key] = (future, threading.get_ident())
                self.stats.misses += 1
                owner = True
            else:
                future, thread_id = pending
                if thread_id == threading.get_ident():
                    raise InternalError(
                        f"program {key[0]} re-entered for input {key[1]} "
                        "while it is being evaluated"
                    )
                self.stats.waits += 1
                owner = False

        if not owner:
            return future.result()

        logger.debug("Cache miss: program %d, input %d", key[0], key[1])
        try:
            entry = compute()
        except BaseException as exc:
            with self._lock:
                del self._inflight[key]
            future.set_exception(exc)
            raise
        with self._lock:
            self._entries[key] = entry
            del self._inflight[key]
        future.set_result(entry)
        return entry

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.stats = CacheStats()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries


__all__ = ["CacheKey", "CacheEntry", "CacheStats", "EvaluationCache"]
