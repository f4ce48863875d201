"""Read-once error and note messages that survive one redirect.

One request writes (``add_errors``/``add_notes``), the next one reads
(``take_errors``/``take_notes``). Taking clears the buffer in the same
locked step, so each message is delivered at most once even when two
requests of one session race.
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from typing import Callable, Dict, Iterable, List, Tuple


ERRORS = "errors"
NOTES = "notes"
DEFAULT_TTL_SECONDS = 3600.0

_logger = logging.getLogger("admin.flash")


def _as_list(messages: Iterable[str] | str | None) -> List[str]:
    if messages is None:
        return []
    if isinstance(messages, str):
        return [messages] if messages else []
    return [str(m) for m in messages if m]


class MemoryFlashStore:
    """Process-local flash buffers; buffers nobody reads expire after ``ttl_seconds``."""

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
        self._buffers: Dict[Tuple[str, str, str], List[str]] = {}
        self._touched: Dict[Tuple[str, str, str], float] = {}
        self._lock = threading.Lock()
        self._ttl = ttl_seconds
        self._clock = clock

    def _prune_locked(self) -> None:
        cutoff = self._clock() - self._ttl
        stale = [key for key, touched in self._touched.items() if touched < cutoff]
        for key in stale:
            self._buffers.pop(key, None)
            del self._touched[key]
        if stale:
            _logger.info("flash_expired buffers=%s", len(stale))

    def append(self, session_id: str, scope: str, kind: str, messages: List[str]) -> None:
        if not messages:
            return
        key = (session_id, scope, kind)
        with self._lock:
            self._prune_locked()
            self._buffers.setdefault(key, []).extend(messages)
            self._touched[key] = self._clock()

    def peek(self, session_id: str, scope: str, kind: str) -> List[str]:
        with self._lock:
            self._prune_locked()
            return copy.deepcopy(self._buffers.get((session_id, scope, kind), []))

    def take(self, session_id: str, scope: str, kind: str) -> List[str]:
        key = (session_id, scope, kind)
        with self._lock:
            self._prune_locked()
            self._touched.pop(key, None)
            return self._buffers.pop(key, [])

    def clear_session(self, session_id: str) -> None:
        with self._lock:
            for key in [k for k in self._buffers if k[0] == session_id]:
                del self._buffers[key]
                self._touched.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffers)


class FlashChannel:
    """Flash buffers of one session within one scope."""

    def __init__(self, store, session_id: str, scope: str = "admin") -> None:
        self._store = store
        self.session_id = session_id
        self.scope = scope

    def add_errors(self, errors: Iterable[str] | str | None) -> None:
        messages = _as_list(errors)
        if messages:
            _logger.info("flash_errors session=%s scope=%s count=%s", self.session_id, self.scope, len(messages))
        self._store.append(self.session_id, self.scope, ERRORS, messages)

    def add_notes(self, notes: Iterable[str] | str | None) -> None:
        self._store.append(self.session_id, self.scope, NOTES, _as_list(notes))

    def has_errors(self) -> bool:
        return bool(self._store.peek(self.session_id, self.scope, ERRORS))

    def take_errors(self) -> List[str]:
        return self._store.take(self.session_id, self.scope, ERRORS)

    def take_notes(self) -> List[str]:
        return self._store.take(self.session_id, self.scope, NOTES)
