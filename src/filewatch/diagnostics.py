"""Fault and activity recording for the watchdog."""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional

from .models import WatchFault

logger = logging.getLogger(__name__)


@dataclass
class WatchStatistics:
    """Counters describing what the watchdog has seen and done."""
    events_received: int = 0
    events_untracked: int = 0
    events_suppressed: int = 0
    notifications_sent: int = 0
    dispatch_faults: int = 0
    subscriber_faults: int = 0
    native_failures: int = 0
    recovery_faults: int = 0
    recoveries: int = 0
    recoveries_coalesced: int = 0
    channel_drops: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "events_received": self.events_received,
            "events_untracked": self.events_untracked,
            "events_suppressed": self.events_suppressed,
            "notifications_sent": self.notifications_sent,
            "dispatch_faults": self.dispatch_faults,
            "subscriber_faults": self.subscriber_faults,
            "native_failures": self.native_failures,
            "recovery_faults": self.recovery_faults,
            "recoveries": self.recoveries,
            "recoveries_coalesced": self.recoveries_coalesced,
            "channel_drops": self.channel_drops,
        }


# fault stage -> statistics counter
_FAULT_COUNTERS = {
    "dispatch": "dispatch_faults",
    "subscriber": "subscriber_faults",
    "native": "native_failures",
    "recovery": "recovery_faults",
}


class Diagnostics:
    """
    Records faults from the delivery and recovery paths.

    Faults are logged and kept in a bounded history so that isolating the
    delivery thread from handler errors never hides them completely.
    Subclass or replace this to forward faults elsewhere.
    """

    def __init__(self, history: int = 100):
        self._stats = WatchStatistics()
        self._faults: Deque[WatchFault] = deque(maxlen=max(history, 0))
        self._lock = threading.Lock()

    def count(self, counter: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self._stats, counter, getattr(self._stats, counter) + amount)

    def record_fault(
        self,
        stage: str,
        exc: BaseException,
        path: Optional[Path] = None,
    ) -> WatchFault:
        """
        Record a fault.

        Args:
            stage: Where the fault happened (dispatch, subscriber, native, recovery)
            exc: The exception that was caught
            path: File or directory involved, if known

        Returns:
            The recorded fault
        """
        fault = WatchFault.from_exception(stage, exc, path)
        counter = _FAULT_COUNTERS.get(stage)

        with self._lock:
            if counter:
                setattr(self._stats, counter, getattr(self._stats, counter) + 1)
            self._faults.append(fault)

        where = path if path is not None else "<unknown>"
        logger.warning(
            f"Watch fault in {stage} for {where}: {exc}",
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        return fault

    def recent_faults(self) -> List[WatchFault]:
        with self._lock:
            return list(self._faults)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return self._stats.to_dict()

    def reset(self) -> None:
        with self._lock:
            self._stats = WatchStatistics()
            self._faults.clear()
