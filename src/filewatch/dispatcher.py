"""Resolution, debouncing and delivery of raw change events."""

import logging
import queue
import threading
import time
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple

from .debounce import DebounceTracker
from .diagnostics import Diagnostics
from .models import ChangeKind, FileChange, RawFSEvent
from .paths import PathInput, canonicalize
from .registry import FileRegistry

logger = logging.getLogger(__name__)


ChangeCallback = Callable[[FileChange], None]


class Subscription:
    """A registered change callback. Cancel it to stop receiving changes."""

    def __init__(self, dispatcher: "EventDispatcher", callback: ChangeCallback):
        self._dispatcher = dispatcher
        self.callback = callback

    @property
    def active(self) -> bool:
        return self._dispatcher.is_subscribed(self)

    def cancel(self) -> bool:
        """
        Stop delivering changes to the callback.

        Returns:
            True if the subscription was active
        """
        return self._dispatcher.unsubscribe(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cancel()
        return False


class ChangeChannel:
    """
    Bounded queue of changes for consumers on other threads.

    The delivery thread never blocks on a channel: when it is full the
    change is dropped and counted.
    """

    def __init__(self, maxsize: int = 1000, on_drop: Optional[Callable[[FileChange], None]] = None):
        """
        Initialize the channel.

        Args:
            maxsize: Maximum queued changes (0 for unbounded)
            on_drop: Called with each change dropped because the channel is full
        """
        self._queue: "queue.Queue[FileChange]" = queue.Queue(maxsize=maxsize)
        self.on_drop = on_drop
        self.subscription: Optional[Subscription] = None
        self.dropped = 0
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, change: FileChange) -> bool:
        """
        Offer a change without blocking.

        Returns:
            True if queued, False if dropped
        """
        if self._closed:
            return False
        try:
            self._queue.put_nowait(change)
            return True
        except queue.Full:
            with self._lock:
                self.dropped += 1
            if self.on_drop:
                self.on_drop(change)
            return False

    __call__ = put

    def get(self, timeout: Optional[float] = None) -> Optional[FileChange]:
        """
        Take the next change.

        Args:
            timeout: Seconds to wait, None to wait forever

        Returns:
            The next change, or None if none arrived in time
        """
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self, max_count: int = 100) -> List[FileChange]:
        """
        Take queued changes without blocking.

        Args:
            max_count: Maximum number of changes to return

        Returns:
            List of queued changes, oldest first
        """
        changes = []
        while len(changes) < max_count:
            try:
                changes.append(self._queue.get_nowait())
            except queue.Empty:
                break
        return changes

    def __iter__(self) -> Iterator[FileChange]:
        """Yield changes until the channel is closed and empty."""
        while True:
            change = self.get(timeout=0.1)
            if change is not None:
                yield change
            elif self._closed:
                return

    def close(self) -> None:
        """Stop receiving changes. Queued changes can still be drained."""
        if self._closed:
            return
        self._closed = True
        if self.subscription is not None:
            self.subscription.cancel()

    def __len__(self) -> int:
        return self._queue.qsize()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class EventDispatcher:
    """
    Turns raw native callbacks into FileChange notifications.

    Raw events are resolved against the registry, debounced per file and
    delivered synchronously to every subscriber on the calling thread.
    Nothing raised here reaches the native delivery thread.
    """

    def __init__(
        self,
        registry: FileRegistry,
        debouncer: DebounceTracker,
        diagnostics: Optional[Diagnostics] = None,
    ):
        self.registry = registry
        self.debouncer = debouncer
        self.diagnostics = diagnostics or Diagnostics()
        # Copy-on-write so delivery iterates without holding the lock
        self._subscribers: Tuple[Subscription, ...] = ()
        self._lock = threading.Lock()

    def subscribe(self, callback: ChangeCallback) -> Subscription:
        """
        Register a change callback.

        Args:
            callback: Called with every accepted FileChange

        Returns:
            Subscription handle
        """
        if not callable(callback):
            raise TypeError(f"callback must be callable: {callback!r}")
        subscription = Subscription(self, callback)
        with self._lock:
            self._subscribers = self._subscribers + (subscription,)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        with self._lock:
            if subscription not in self._subscribers:
                return False
            self._subscribers = tuple(s for s in self._subscribers if s is not subscription)
            return True

    def is_subscribed(self, subscription: Subscription) -> bool:
        return subscription in self._subscribers

    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def clear(self) -> None:
        """Drop every subscription."""
        with self._lock:
            self._subscribers = ()

    def handle(self, raw_event: RawFSEvent) -> None:
        """
        Process a raw event from a native watch.

        A move is resolved twice: once for the new path, once for the old.

        Args:
            raw_event: The raw event
        """
        change_kind = raw_event.change_kind
        if change_kind is None:
            return

        if change_kind is ChangeKind.RENAMED:
            if raw_event.dest_path is not None:
                self.on_raw_event(raw_event.dest_path, change_kind)
            self.on_raw_event(raw_event.src_path, change_kind)
        else:
            self.on_raw_event(raw_event.src_path, change_kind)

    def on_raw_event(
        self,
        path: PathInput,
        change_kind: ChangeKind,
        now: Optional[float] = None,
    ) -> Optional[FileChange]:
        """
        Resolve, debounce and deliver one raw event.

        Args:
            path: Path reported by the native watch
            change_kind: What happened to the path
            now: Debounce clock reading, defaults to the tracker's clock

        Returns:
            The delivered change, or None if the event was discarded
        """
        try:
            self.diagnostics.count("events_received")

            watched = canonicalize(path)
            entry = self.registry.lookup(watched)
            if entry is None:
                self.diagnostics.count("events_untracked")
                return None

            if not self.debouncer.should_emit(entry.path_key, now):
                self.diagnostics.count("events_suppressed")
                logger.debug(f"Suppressed {change_kind.value} for {entry.path}")
                return None

            change = FileChange(path=entry.path, change_kind=change_kind, timestamp=time.time())
            self._deliver(change)
            return change
        except Exception as e:
            self.diagnostics.record_fault("dispatch", e, Path(path) if isinstance(path, (str, Path)) else None)
            return None

    def _deliver(self, change: FileChange) -> None:
        for subscription in self._subscribers:
            try:
                subscription.callback(change)
            except Exception as e:
                self.diagnostics.record_fault("subscriber", e, change.path)
        self.diagnostics.count("notifications_sent")
