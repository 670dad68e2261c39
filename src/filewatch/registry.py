"""Thread-safe registry of watched files grouped by directory."""

import threading
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Tuple

from .paths import PathInput, WatchedPath, canonical_directory, canonicalize, path_key


class _DirectoryEntry:
    """Watched file names of one directory, keyed case-insensitively."""

    __slots__ = ("directory", "files")

    def __init__(self, directory: Path):
        self.directory = directory
        self.files: Dict[str, WatchedPath] = {}


class FileRegistry:
    """
    Thread-safe mapping from directory to the watched files inside it.

    A directory is present only while it has at least one watched file.
    The registry only records membership; callers use the returned
    first/last flags to create or release directory watches.
    """

    def __init__(self):
        """Initialize an empty registry."""
        self._directories: Dict[str, _DirectoryEntry] = {}
        self._lock = threading.RLock()

    def register(self, path: PathInput) -> Tuple[WatchedPath, bool]:
        """
        Add a file to the registry.

        Args:
            path: Path to the file

        Returns:
            (watched_path, first_in_directory) - first_in_directory is True
            when the file's directory had no watched files before

        Raises:
            InvalidPathError: If the path cannot be resolved
        """
        watched = path if isinstance(path, WatchedPath) else canonicalize(path)

        with self._lock:
            entry = self._directories.get(watched.directory_key)
            first = entry is None
            if first:
                entry = _DirectoryEntry(watched.directory)
                self._directories[watched.directory_key] = entry
            entry.files.setdefault(watched.name_key, watched)
            return watched, first

    def unregister(self, path: PathInput) -> Tuple[WatchedPath, Optional[bool]]:
        """
        Remove a file from the registry.

        Args:
            path: Path to the file

        Returns:
            (watched_path, directory_emptied) - directory_emptied is None if
            the file was not registered, True if it was the directory's last
            watched file, False otherwise

        Raises:
            InvalidPathError: If the path cannot be resolved
        """
        watched = path if isinstance(path, WatchedPath) else canonicalize(path)

        with self._lock:
            entry = self._directories.get(watched.directory_key)
            if entry is None or entry.files.pop(watched.name_key, None) is None:
                return watched, None

            if not entry.files:
                del self._directories[watched.directory_key]
                return watched, True
            return watched, False

    def contains(self, directory: PathInput, file_name: str) -> bool:
        """
        Check if a file name is watched inside a directory.

        Args:
            directory: Directory containing the file
            file_name: Name of the file

        Returns:
            True if the file is registered
        """
        key = path_key(canonical_directory(directory))
        with self._lock:
            entry = self._directories.get(key)
            return entry is not None and path_key(file_name) in entry.files

    def contains_path(self, path: PathInput) -> bool:
        """Check if a file path is registered."""
        watched = path if isinstance(path, WatchedPath) else canonicalize(path)

        with self._lock:
            entry = self._directories.get(watched.directory_key)
            return entry is not None and watched.name_key in entry.files

    def lookup(self, watched: WatchedPath) -> Optional[WatchedPath]:
        """Return the registered entry matching a canonical path, if any."""
        with self._lock:
            entry = self._directories.get(watched.directory_key)
            if entry is None:
                return None
            return entry.files.get(watched.name_key)

    def directories_with_files(self) -> FrozenSet[Path]:
        """
        Get a snapshot of the directories that have watched files.

        Returns:
            Frozen set of directory paths
        """
        with self._lock:
            return frozenset(entry.directory for entry in self._directories.values())

    def files_in(self, directory: PathInput) -> List[Path]:
        """Get the watched files of one directory."""
        key = path_key(canonical_directory(directory))
        with self._lock:
            entry = self._directories.get(key)
            if entry is None:
                return []
            return sorted(w.path for w in entry.files.values())

    def all_files(self) -> List[Path]:
        """Get every watched file."""
        with self._lock:
            return sorted(
                w.path
                for entry in self._directories.values()
                for w in entry.files.values()
            )

    def clear(self) -> int:
        """
        Remove all files.

        Returns:
            Number of files removed
        """
        with self._lock:
            count = sum(len(entry.files) for entry in self._directories.values())
            self._directories.clear()
            return count

    def __len__(self) -> int:
        """Return the number of watched files."""
        with self._lock:
            return sum(len(entry.files) for entry in self._directories.values())

    def __contains__(self, path: PathInput) -> bool:
        return self.contains_path(path)
