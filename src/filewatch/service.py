"""File watchdog service: per-file change notifications over directory watches."""

import logging
import threading
from datetime import timedelta
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Union

from .config import WatchdogConfig
from .debounce import DebounceTracker
from .diagnostics import Diagnostics
from .dispatcher import ChangeCallback, ChangeChannel, EventDispatcher, Subscription
from .exceptions import InvalidPathError, WatchFailureError, WatcherDisposedError
from .fs_watcher import WatchFactory, WatcherLifecycleManager, default_watch_factory
from .locks import RebuildGate, StripedLock
from .paths import PathInput, canonicalize
from .recovery import FailureRecoveryHandler
from .registry import FileRegistry

logger = logging.getLogger(__name__)


class FileWatchdog:
    """
    Notifies subscribers when any of a dynamic set of files changes.

    Files are grouped by parent directory so each directory costs one
    native watch no matter how many of its files are registered. Rapid
    repeated events for a file are debounced, and a failing native watch
    triggers a rebuild of every watch from the registry.

    Example:
        with FileWatchdog() as watchdog:
            watchdog.add_file("config.yaml")
            watchdog.subscribe(lambda change: print(change.path))
            watchdog.start()
    """

    def __init__(
        self,
        config: Optional[WatchdogConfig] = None,
        watch_factory: Optional[WatchFactory] = None,
        diagnostics: Optional[Diagnostics] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize the watchdog in the stopped state.

        Args:
            config: Watchdog configuration
            watch_factory: Builds the native watch for a directory
            diagnostics: Receives delivery faults and native failures
            clock: Monotonic time source for debouncing
        """
        self.config = config or WatchdogConfig()
        self.diagnostics = diagnostics or Diagnostics(self.config.fault_history)

        self._registry = FileRegistry()
        self._debouncer = DebounceTracker(self.config.debounce_seconds, clock)
        self._dispatcher = EventDispatcher(self._registry, self._debouncer, self.diagnostics)
        self._lifecycle = WatcherLifecycleManager(
            self._dispatcher.handle,
            self._on_watch_error,
            watch_factory or default_watch_factory(self.config.observer_join_timeout),
            on_failure=self._on_watch_failure,
        )
        self._gate = RebuildGate()
        self._stripes = StripedLock()
        self._recovery = FailureRecoveryHandler(
            self._registry,
            self._lifecycle,
            self._gate,
            is_running=lambda: self._running,
            diagnostics=self.diagnostics,
            is_closed=lambda: self._disposed,
        )

        self._running = False
        self._disposed = False
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._health_thread: Optional[threading.Thread] = None

    def _on_watch_error(self, directory: Path, error: BaseException) -> None:
        if self._disposed:
            return
        self._recovery.on_watch_error(directory, error)

    def _on_watch_failure(self, directory: Path, error: BaseException) -> None:
        self.diagnostics.record_fault("native", error, directory)

    def _check_disposed(self) -> None:
        if self._disposed:
            raise WatcherDisposedError("FileWatchdog has been disposed")

    def add_file(self, path: PathInput) -> None:
        """
        Start watching a file.

        Adding a file that is already watched does nothing.

        Args:
            path: Relative or absolute path to the file

        Raises:
            InvalidPathError: If the path has no directory or file name, or
                its directory does not exist
            WatchFailureError: If the directory cannot be watched
            WatcherDisposedError: If the watchdog was disposed
        """
        self._check_disposed()

        watched = canonicalize(path)
        if not watched.directory.is_dir():
            raise InvalidPathError(f"Directory does not exist: {watched.directory}")

        with self._gate.shared(), self._stripes.hold(watched.directory_key):
            self._check_disposed()

            _, first = self._registry.register(watched)
            if first:
                try:
                    self._lifecycle.ensure_watch(watched.directory)
                except WatchFailureError:
                    self._registry.unregister(watched)
                    raise

        logger.info(f"Watchdog: Adding file to watch: {watched.path}")

    def add_files(self, paths: Iterable[PathInput]) -> None:
        """
        Start watching several files.

        Each path is added independently; files added before a failing
        path stay registered.

        Args:
            paths: Paths to the files
        """
        if paths is None or isinstance(paths, (str, bytes)):
            raise InvalidPathError("paths must be an iterable of paths")
        for path in paths:
            self.add_file(path)

    def remove_file(self, path: PathInput) -> bool:
        """
        Stop watching a file.

        Args:
            path: Relative or absolute path to the file

        Returns:
            True if the file was being watched

        Raises:
            InvalidPathError: If the path has no directory or file name
            WatcherDisposedError: If the watchdog was disposed
        """
        self._check_disposed()

        watched = canonicalize(path)

        with self._gate.shared(), self._stripes.hold(watched.directory_key):
            self._check_disposed()

            _, emptied = self._registry.unregister(watched)
            if emptied is None:
                return False

            self._debouncer.discard(watched.path_key)
            if emptied:
                self._lifecycle.release_watch(watched.directory)

        logger.info(f"Watchdog: Removed file from watch: {watched.path}")
        return True

    def remove_files(self, paths: Iterable[PathInput]) -> None:
        """
        Stop watching several files.

        Args:
            paths: Paths to the files
        """
        if paths is None or isinstance(paths, (str, bytes)):
            raise InvalidPathError("paths must be an iterable of paths")
        for path in paths:
            self.remove_file(path)

    def remove_all(self) -> None:
        """Stop watching every file and release every directory watch."""
        self._check_disposed()

        with self._gate.exclusive():
            self._check_disposed()
            released = self._lifecycle.release_all()
            files = self._registry.clear()
            self._debouncer.clear()

        logger.info(f"Watchdog: Removed {files} file(s) and {released} directory watch(es)")

    def start(self) -> None:
        """Start delivering change notifications. Does nothing if running."""
        self._check_disposed()

        with self._gate.shared(), self._state_lock:
            self._check_disposed()
            if self._running:
                return
            self._lifecycle.set_all_enabled(True)
            self._running = True
            self._start_health_loop()

        logger.info(f"Watchdog started with {len(self._lifecycle)} directory watch(es)")

    def stop(self) -> None:
        """Stop delivering change notifications. Does nothing if stopped."""
        self._check_disposed()

        with self._gate.shared(), self._state_lock:
            self._check_disposed()
            if not self._running:
                return
            self._lifecycle.set_all_enabled(False)
            self._running = False
            health_thread = self._stop_health_loop()

        self._join_health_loop(health_thread)
        logger.info("Watchdog stopped")

    @property
    def is_running(self) -> bool:
        """Check if notifications are being delivered."""
        return self._running

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def debounce_interval(self) -> timedelta:
        """Minimum time between two notifications for the same file."""
        return timedelta(seconds=self._debouncer.interval)

    @debounce_interval.setter
    def debounce_interval(self, value: Union[timedelta, float]) -> None:
        seconds = value.total_seconds() if isinstance(value, timedelta) else float(value)
        if seconds < 0:
            raise ValueError(f"debounce_interval must not be negative: {value}")
        self._debouncer.interval = seconds

    def _start_health_loop(self) -> None:
        if self.config.health_check_interval_ms <= 0:
            return
        # Each loop gets its own event so a slow previous loop cannot be revived
        self._stop_event = threading.Event()
        self._health_thread = threading.Thread(
            target=self._health_loop,
            args=(self._stop_event,),
            name="WatchHealth",
            daemon=True,
        )
        self._health_thread.start()

    def _stop_health_loop(self) -> Optional[threading.Thread]:
        self._stop_event.set()
        thread = self._health_thread
        self._health_thread = None
        return thread

    def _join_health_loop(self, thread: Optional[threading.Thread]) -> None:
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.config.observer_join_timeout)

    def _health_loop(self, stop_event: threading.Event) -> None:
        """Worker loop that checks native watches and triggers recovery."""
        interval = self.config.health_check_seconds
        logger.debug(f"Health loop started, interval={interval}s")

        while not stop_event.wait(timeout=interval):
            try:
                failed = self._lifecycle.check_health()
            except Exception as e:
                self.diagnostics.record_fault("native", e)
                continue

            for directory in failed:
                if stop_event.is_set():
                    break
                self._on_watch_error(
                    directory,
                    WatchFailureError(
                        f"Watch stopped delivering events: {directory}",
                        directory=directory,
                    ),
                )

    def recover(self) -> int:
        """
        Rebuild every directory watch now.

        Returns:
            Number of watches rebuilt
        """
        self._check_disposed()
        return self._recovery.recover()

    def subscribe(self, callback: ChangeCallback) -> Subscription:
        """
        Register a callback for change notifications.

        The callback runs synchronously on a native delivery thread and
        must not block. Exceptions it raises are recorded and ignored.

        Args:
            callback: Called with each FileChange

        Returns:
            Subscription to cancel the callback
        """
        self._check_disposed()
        return self._dispatcher.subscribe(callback)

    def channel(self, maxsize: Optional[int] = None) -> ChangeChannel:
        """
        Open a bounded channel receiving every change notification.

        Args:
            maxsize: Channel capacity, defaults to config.channel_maxsize

        Returns:
            A subscribed ChangeChannel
        """
        self._check_disposed()
        channel = ChangeChannel(
            maxsize=self.config.channel_maxsize if maxsize is None else maxsize,
            on_drop=lambda change: self.diagnostics.count("channel_drops"),
        )
        channel.subscription = self._dispatcher.subscribe(channel.put)
        return channel

    def is_watching(self, path: PathInput) -> bool:
        """Check if a file is registered."""
        self._check_disposed()
        return self._registry.contains_path(path)

    def watched_files(self) -> List[Path]:
        self._check_disposed()
        return self._registry.all_files()

    def watched_directories(self) -> List[Path]:
        self._check_disposed()
        return sorted(self._lifecycle.get_watched_directories())

    def stats(self) -> Dict[str, object]:
        """
        Get activity counters.

        Returns:
            Diagnostics counters plus current registration sizes
        """
        stats = dict(self.diagnostics.stats())
        stats.update({
            "files": len(self._registry),
            "directories": len(self._lifecycle),
            "debounce_entries": len(self._debouncer),
            "subscribers": self._dispatcher.subscriber_count(),
            "running": self._running,
        })
        return stats

    def dispose(self) -> None:
        """Release every watch. All later calls raise WatcherDisposedError."""
        with self._state_lock:
            if self._disposed:
                return
            self._disposed = True
            health_thread = self._stop_health_loop()

        self._join_health_loop(health_thread)

        with self._gate.exclusive():
            self._lifecycle.set_all_enabled(False)
            self._lifecycle.release_all()
            self._registry.clear()
            self._debouncer.clear()
            self._dispatcher.clear()
            self._running = False

        logger.info("Watchdog disposed")

    def close(self) -> None:
        self.dispose()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.dispose()
        return False
