"""Per-directory native watches using the watchdog library."""

import logging
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set

from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler

from .exceptions import WatchFailureError
from .models import RawFSEvent
from .paths import path_key

logger = logging.getLogger(__name__)


EventCallback = Callable[[RawFSEvent], None]
ErrorCallback = Callable[[Path, BaseException], None]


class FSEventHandler(FileSystemEventHandler):
    """Handler that converts watchdog file events to RawFSEvent."""

    def __init__(
        self,
        callback: EventCallback,
        directory: Path,
        on_error: Optional[ErrorCallback] = None,
    ):
        super().__init__()
        self.callback = callback
        self.directory = directory
        self.on_error = on_error

    def _emit(self, event_type: str, src_path, dest_path=None):
        """Emit a RawFSEvent to the callback."""
        raw_event = RawFSEvent(
            event_type=event_type,
            src_path=Path(src_path),
            dest_path=Path(dest_path) if dest_path else None,
            timestamp=time.time(),
        )
        self.callback(raw_event)

    def on_created(self, event):
        if not event.is_directory:
            self._emit("created", event.src_path)

    def on_deleted(self, event):
        if not event.is_directory:
            self._emit("deleted", event.src_path)
        elif self.on_error and path_key(Path(event.src_path)) == path_key(self.directory):
            self.on_error(
                self.directory,
                WatchFailureError(
                    f"Watched directory was deleted: {self.directory}",
                    directory=self.directory,
                ),
            )

    def on_modified(self, event):
        if not event.is_directory:
            self._emit("modified", event.src_path)

    def on_moved(self, event):
        if not event.is_directory:
            self._emit("moved", event.src_path, event.dest_path)


class NativeWatch(ABC):
    """
    A native, non-recursive change subscription for one directory.

    Implementations deliver raw events through the event callback given at
    construction and report unreliable delivery through the error callback.
    """

    def __init__(self, directory: Path, on_event: EventCallback, on_error: ErrorCallback):
        self.directory = directory
        self.on_event = on_event
        self.on_error = on_error
        self._enabled = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    @abstractmethod
    def set_enabled(self, enabled: bool) -> None:
        """
        Start or stop delivering events.

        Raises:
            WatchFailureError: If the native watch cannot be armed
        """
        pass

    @abstractmethod
    def is_healthy(self) -> bool:
        """Return False if an enabled watch is no longer delivering events."""
        pass

    def close(self) -> None:
        """Release the native resources."""
        self.set_enabled(False)


WatchFactory = Callable[[Path, EventCallback, ErrorCallback], NativeWatch]


class DirectoryWatch(NativeWatch):
    """
    A watchdog observer scheduled on a single directory.

    Enabling starts a fresh observer with a non-recursive schedule; disabling
    stops it, which releases the OS watch while the directory is idle.
    """

    def __init__(
        self,
        directory: Path,
        on_event: EventCallback,
        on_error: ErrorCallback,
        join_timeout: float = 5.0,
    ):
        super().__init__(directory, on_event, on_error)
        self.join_timeout = join_timeout
        self.handler = FSEventHandler(on_event, directory, on_error)
        self._observer: Optional[Observer] = None
        self._lock = threading.RLock()

    @property
    def armed(self) -> bool:
        with self._lock:
            return self._observer is not None

    def set_enabled(self, enabled: bool) -> None:
        with self._lock:
            self._enabled = enabled
            if enabled:
                self._arm()
            else:
                self._disarm()

    def _arm(self) -> None:
        self._disarm()

        observer = Observer()
        try:
            observer.schedule(self.handler, str(self.directory), recursive=False)
            observer.start()
        except (OSError, RuntimeError) as e:
            raise WatchFailureError(
                f"Cannot watch directory {self.directory}: {e}",
                directory=self.directory,
            ) from e

        self._observer = observer
        logger.debug(f"Armed watch for {self.directory}")

    def _disarm(self) -> None:
        observer = self._observer
        if observer is None:
            return
        self._observer = None

        observer.stop()
        # A subscriber may release its own watch from the delivery thread
        if threading.current_thread() is not observer:
            observer.join(timeout=self.join_timeout)
        logger.debug(f"Disarmed watch for {self.directory}")

    def is_healthy(self) -> bool:
        with self._lock:
            if not self._enabled:
                return True
            observer = self._observer
            if observer is None or not observer.is_alive():
                return False
            emitters = observer.emitters
            return bool(emitters) and all(e.is_alive() for e in emitters)


def default_watch_factory(join_timeout: float = 5.0) -> WatchFactory:
    """Build a factory producing watchdog-backed DirectoryWatch handles."""

    def factory(directory: Path, on_event: EventCallback, on_error: ErrorCallback) -> NativeWatch:
        return DirectoryWatch(directory, on_event, on_error, join_timeout=join_timeout)

    return factory


class WatcherLifecycleManager:
    """
    Owns one native watch per directory that has watched files.

    Handles created while the manager is enabled start enabled, so every
    handle mirrors the current running mode.
    """

    def __init__(
        self,
        on_event: EventCallback,
        on_error: ErrorCallback,
        watch_factory: Optional[WatchFactory] = None,
        on_failure: Optional[ErrorCallback] = None,
    ):
        """
        Initialize the lifecycle manager.

        Args:
            on_event: Callback for raw events from every handle
            on_error: Callback for native errors from every handle
            watch_factory: Builds a NativeWatch for a directory
            on_failure: Called when a handle fails to toggle or close during
                a bulk operation; those failures are not raised
        """
        self.on_event = on_event
        self.on_error = on_error
        self.watch_factory = watch_factory or default_watch_factory()
        self.on_failure = on_failure or self._log_failure
        self._watches: Dict[str, NativeWatch] = {}
        self._reported: Set[str] = set()
        self._enabled = False
        self._lock = threading.RLock()

    @staticmethod
    def _log_failure(directory: Path, exc: BaseException) -> None:
        logger.warning(f"Watch failure for {directory}: {exc}")

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _create(self, directory: Path) -> NativeWatch:
        return self.watch_factory(directory, self.on_event, self.on_error)

    def _close(self, handle: NativeWatch) -> None:
        try:
            handle.close()
        except Exception as e:
            self.on_failure(handle.directory, e)

    def ensure_watch(self, directory: Path) -> bool:
        """
        Create the watch for a directory if it has none.

        Args:
            directory: Canonical directory path

        Returns:
            True if a watch was created, False if one already existed

        Raises:
            WatchFailureError: If the new watch cannot be armed
        """
        key = path_key(directory)

        with self._lock:
            if key in self._watches:
                return False
            enabled = self._enabled

        # Armed outside the manager lock; callers serialize per directory
        handle = self._create(directory)
        try:
            handle.set_enabled(enabled)
        except WatchFailureError:
            self._close(handle)
            raise

        with self._lock:
            existing = self._watches.get(key)
            if existing is None:
                self._watches[key] = handle
                if self._enabled != enabled:
                    # Mode changed while arming
                    try:
                        handle.set_enabled(self._enabled)
                    except WatchFailureError as e:
                        self._reported.add(key)
                        self.on_failure(directory, e)

        if existing is not None:
            self._close(handle)
            return False

        logger.info(f"Watching directory: {directory}")
        return True

    def release_watch(self, directory: Path) -> bool:
        """
        Destroy the watch for a directory.

        Args:
            directory: Canonical directory path

        Returns:
            True if a watch was destroyed, False if none existed
        """
        key = path_key(directory)

        with self._lock:
            handle = self._watches.pop(key, None)
            self._reported.discard(key)

        if handle is None:
            return False

        self._close(handle)
        logger.info(f"Stopped watching directory: {directory}")
        return True

    def set_all_enabled(self, enabled: bool) -> None:
        """
        Toggle every handle to match the running mode.

        Args:
            enabled: True to deliver events, False to pause delivery
        """
        with self._lock:
            self._enabled = enabled
            for handle in self._watches.values():
                try:
                    handle.set_enabled(enabled)
                except WatchFailureError as e:
                    self.on_failure(handle.directory, e)

    def rebuild_from(self, directories, enabled: bool) -> int:
        """
        Replace every handle with a fresh one.

        Args:
            directories: Snapshot of directories that still have watched files
            enabled: Mode applied to the new handles

        Returns:
            Number of handles created
        """
        with self._lock:
            old = list(self._watches.values())
            self._watches.clear()
            self._reported.clear()
            self._enabled = enabled

        for handle in old:
            self._close(handle)

        fresh: Dict[str, NativeWatch] = {}
        failed: Set[str] = set()
        for directory in directories:
            handle = self._create(directory)
            key = path_key(directory)
            try:
                handle.set_enabled(enabled)
            except WatchFailureError as e:
                # Kept disarmed; the health check re-arms it in place
                failed.add(key)
                self.on_failure(directory, e)
            fresh[key] = handle

        with self._lock:
            self._watches.update(fresh)
            self._reported.update(failed)
            count = len(self._watches)

        logger.info(f"Rebuilt {count} directory watch(es)")
        return count

    def release_all(self) -> int:
        """
        Destroy every handle.

        Returns:
            Number of handles destroyed
        """
        with self._lock:
            handles = list(self._watches.values())
            self._watches.clear()
            self._reported.clear()

        for handle in handles:
            self._close(handle)
        return len(handles)

    def check_health(self) -> List[Path]:
        """
        Check enabled handles.

        A handle found unhealthy for the first time is reported so the
        caller can run a recovery. One that is still unhealthy after being
        reported is re-armed in place instead.

        Returns:
            Directories whose watch newly failed
        """
        failed = []

        with self._lock:
            for key, handle in list(self._watches.items()):
                if handle.is_healthy():
                    self._reported.discard(key)
                    continue

                if key not in self._reported:
                    self._reported.add(key)
                    failed.append(handle.directory)
                    continue

                try:
                    handle.set_enabled(self._enabled)
                except WatchFailureError:
                    continue
                self._reported.discard(key)
                logger.info(f"Re-armed watch for {handle.directory}")

        return failed

    def get_watch(self, directory: Path) -> Optional[NativeWatch]:
        with self._lock:
            return self._watches.get(path_key(directory))

    def is_watching(self, directory: Path) -> bool:
        with self._lock:
            return path_key(directory) in self._watches

    def get_watched_directories(self) -> List[Path]:
        """
        Get the directories that currently have a watch.

        Returns:
            List of directory paths
        """
        with self._lock:
            return [handle.directory for handle in self._watches.values()]

    def __len__(self) -> int:
        """Return the number of directory watches."""
        with self._lock:
            return len(self._watches)
