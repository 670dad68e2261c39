"""Path canonicalization for watched files."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from .exceptions import InvalidPathError


PathInput = Union[str, os.PathLike]


def path_key(path: Union[str, Path]) -> str:
    """Case-insensitive comparison key for a canonical path or name."""
    return str(path).casefold()


@dataclass(frozen=True)
class WatchedPath:
    """
    A canonical absolute file path split into directory and file name.

    Attributes:
        path: Absolute path to the file
        directory: Absolute path to the parent directory
        name: File name within the directory
    """
    path: Path
    directory: Path
    name: str

    @property
    def directory_key(self) -> str:
        return path_key(self.directory)

    @property
    def name_key(self) -> str:
        return path_key(self.name)

    @property
    def path_key(self) -> str:
        return path_key(self.path)


def _to_text(path: PathInput) -> str:
    if path is None:
        raise InvalidPathError("path must not be None")
    try:
        text = os.fspath(path)
    except TypeError:
        raise InvalidPathError(f"Not a path: {path!r}")
    if not isinstance(text, str):
        raise InvalidPathError(f"Path must be text, got {type(text).__name__}")
    if not text.strip():
        raise InvalidPathError("path must not be blank")
    return text


def _resolve(text: str) -> Path:
    # Lexical only; symlinks are not followed
    try:
        return Path(os.path.abspath(os.path.expanduser(text)))
    except (OSError, ValueError) as e:
        raise InvalidPathError(f"Cannot resolve path {text!r}: {e}")


def canonicalize(path: PathInput) -> WatchedPath:
    """
    Canonicalize a file path to its absolute form.

    Args:
        path: Relative or absolute path to a file

    Returns:
        The canonical WatchedPath

    Raises:
        InvalidPathError: If the path is blank or has no directory or file name
    """
    text = _to_text(path)

    if text.endswith(os.sep) or (os.altsep and text.endswith(os.altsep)):
        raise InvalidPathError(f"Path has no file name: {text!r}")

    full_path = _resolve(text)
    name = full_path.name
    if not name or full_path.parent == full_path:
        raise InvalidPathError(f"Path has no file name: {text!r}")

    return WatchedPath(path=full_path, directory=full_path.parent, name=name)


def canonical_directory(directory: PathInput) -> Path:
    """Canonicalize a directory path to its absolute form."""
    return _resolve(_to_text(directory))
