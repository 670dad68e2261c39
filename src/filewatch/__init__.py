"""
File Watchdog Package

Watches an arbitrary, changing set of individual files and notifies
subscribers when any of them changes on disk.

Features:
- One native watch per directory, shared by every watched file inside it
- Per-file debouncing of bursts of write events
- Change kinds: MODIFIED, CREATED, DELETED, RENAMED
- Automatic rebuild of every watch after a native watch failure
- Callback subscriptions and bounded change channels
"""

from .models import (
    ChangeKind,
    FileChange,
    RawFSEvent,
    WatchFault,
)

from .config import WatchdogConfig

from .exceptions import (
    WatcherError,
    InvalidPathError,
    WatcherDisposedError,
    WatchFailureError,
)

from .paths import WatchedPath, canonicalize
from .debounce import DebounceTracker
from .diagnostics import Diagnostics, WatchStatistics
from .registry import FileRegistry
from .fs_watcher import (
    DirectoryWatch,
    FSEventHandler,
    NativeWatch,
    WatcherLifecycleManager,
)
from .dispatcher import ChangeChannel, EventDispatcher, Subscription
from .recovery import FailureRecoveryHandler
from .service import FileWatchdog


__all__ = [
    # Models
    "ChangeKind",
    "FileChange",
    "RawFSEvent",
    "WatchFault",
    # Config
    "WatchdogConfig",
    # Exceptions
    "WatcherError",
    "InvalidPathError",
    "WatcherDisposedError",
    "WatchFailureError",
    # Components
    "WatchedPath",
    "canonicalize",
    "DebounceTracker",
    "Diagnostics",
    "WatchStatistics",
    "FileRegistry",
    "DirectoryWatch",
    "FSEventHandler",
    "NativeWatch",
    "WatcherLifecycleManager",
    "ChangeChannel",
    "EventDispatcher",
    "Subscription",
    "FailureRecoveryHandler",
    # Service
    "FileWatchdog",
]

__version__ = "0.1.0"
