"""Per-file debouncing of raw change events."""

import threading
import time
from typing import Callable, Dict, Optional


class DebounceTracker:
    """
    Decides whether a raw event for a file should produce a notification.

    Every call refreshes the file's last-seen timestamp, so a steady burst of
    events keeps extending the quiet window instead of leaking one
    notification per interval.
    """

    def __init__(
        self,
        interval: float = 0.15,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize the tracker.

        Args:
            interval: Minimum seconds between two notifications for a file
            clock: Monotonic time source, defaults to time.monotonic
        """
        if interval < 0:
            raise ValueError(f"interval must be >= 0: {interval}")
        self._interval = interval
        self._clock = clock or time.monotonic
        self._last_seen: Dict[str, float] = {}
        self._lock = threading.Lock()

    @property
    def interval(self) -> float:
        return self._interval

    @interval.setter
    def interval(self, value: float) -> None:
        if value < 0:
            raise ValueError(f"interval must be >= 0: {value}")
        self._interval = value

    def should_emit(self, key: str, now: Optional[float] = None) -> bool:
        """
        Record an event for a file and decide whether to notify.

        Args:
            key: Case-folded absolute path of the file
            now: Event time in clock seconds, defaults to the clock

        Returns:
            True if the previous event is at least one interval old
        """
        if now is None:
            now = self._clock()

        with self._lock:
            last = self._last_seen.get(key)
            self._last_seen[key] = now

        return last is None or (now - last) >= self._interval

    def discard(self, key: str) -> bool:
        """Forget a file. Returns True if it had an entry."""
        with self._lock:
            return self._last_seen.pop(key, None) is not None

    def clear(self) -> int:
        """Forget all files. Returns the number of entries removed."""
        with self._lock:
            count = len(self._last_seen)
            self._last_seen.clear()
            return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_seen)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._last_seen
