"""An in-memory cache whose entries expire after a time to live."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional, Union

DEFAULT_TTL = timedelta(minutes=10)
DEFAULT_INTERVAL = timedelta(minutes=15)

_log = logging.getLogger(__name__)


class NotFoundError(LookupError):
    """Raised when a key is not present in the store."""


@dataclass(frozen=True)
class _Entry:
    unix: int
    created: float
    value: Any


def _seconds(value: Union[timedelta, float, int]) -> float:
    return value.total_seconds() if isinstance(value, timedelta) else float(value)


class InMemoryStore:
    """Key/value store that periodically drops entries older than its TTL.

    A background thread runs every ``interval`` and removes entries created
    more than ``ttl`` ago. Durations are timedeltas or seconds.
    """

    def __init__(
        self,
        ttl: Union[timedelta, float] = DEFAULT_TTL,
        interval: Union[timedelta, float] = DEFAULT_INTERVAL,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._ttl = _seconds(ttl)
        self._interval = _seconds(interval)
        self._logger = logger or _log
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name="storer-vacuum", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stopped.wait(self._interval):
            self._vacuum()

    def set(self, key: str, value: Any) -> int:
        """Store ``value`` under ``key`` and return the Unix timestamp of the write."""
        now = time.time()
        with self._lock:
            entry = _Entry(unix=int(now), created=time.monotonic(), value=value)
            self._entries[key] = entry
        return entry.unix

    def get(self, key: str, expected_type: type) -> tuple[Any, int]:
        """Return ``(value, timestamp)`` for ``key``.

        Raises TypeError if ``expected_type`` is not a type or the stored value
        is not an instance of it, and NotFoundError if the key is missing.
        """
        if not isinstance(expected_type, type):
            raise TypeError("expected_type must be a type")
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            raise NotFoundError(key)
        if not isinstance(entry.value, expected_type):
            raise TypeError(
                "the types of cache source and dst are different: "
                f"{type(entry.value).__name__!r} {expected_type.__name__!r}"
            )
        return entry.value, entry.unix

    def _vacuum(self) -> None:
        with self._lock:
            self._logger.debug("cleaning cache: len %d ...", len(self._entries))
            now = time.monotonic()
            expired = [k for k, e in self._entries.items() if now - e.created > self._ttl]
            for key in expired:
                del self._entries[key]
            self._logger.debug("cache cleaned: len %d ...", len(self._entries))

    def stop_vacuum(self) -> None:
        """Stop the background thread; entries are no longer expired afterwards."""
        self._logger.debug("stopping vacuum thread")
        self._stopped.set()
        if self._thread is not threading.current_thread():
            self._thread.join()

    def save(self) -> dict[str, Any]:
        """Return a snapshot of the stored values; nothing is written outside memory."""
        with self._lock:
            return {key: entry.value for key, entry in self._entries.items()}

    def delete(self, key: str) -> None:
        """Remove ``key`` from the store; a missing key is not an error."""
        with self._lock:
            self._entries.pop(key, None)