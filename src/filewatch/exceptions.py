"""Custom exceptions for the filewatch package."""

from pathlib import Path
from typing import Optional


class WatcherError(Exception):
    """Base exception for all watcher errors."""
    pass


class InvalidPathError(WatcherError, ValueError):
    """Path cannot be resolved to a directory and a file name."""
    pass


class WatcherDisposedError(WatcherError, RuntimeError):
    """Watchdog was disposed and can no longer be used."""
    pass


class WatchFailureError(WatcherError):
    """A native directory watch stopped delivering events reliably."""

    def __init__(self, message: str, directory: Optional[Path] = None):
        super().__init__(message)
        self.directory = directory
