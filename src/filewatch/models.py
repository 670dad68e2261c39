"""Data models for the filewatch package."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional
import time


class ChangeKind(Enum):
    """Kinds of change reported for a watched file."""
    MODIFIED = "modified"
    CREATED = "created"
    DELETED = "deleted"
    RENAMED = "renamed"


# Raw watchdog event type -> public change kind
RAW_EVENT_KINDS = {
    "modified": ChangeKind.MODIFIED,
    "created": ChangeKind.CREATED,
    "deleted": ChangeKind.DELETED,
    "moved": ChangeKind.RENAMED,
}


@dataclass(frozen=True)
class FileChange:
    """
    A change notification for a watched file.

    Attributes:
        path: Canonical absolute path of the file
        change_kind: What happened to the file
        timestamp: Unix timestamp when the change was dispatched
    """
    path: Path
    change_kind: ChangeKind
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self):
        if not self.path.is_absolute():
            raise ValueError(f"path must be absolute: {self.path}")

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "path": str(self.path),
            "change_kind": self.change_kind.value,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FileChange":
        """Create from dictionary."""
        return cls(
            path=Path(data["path"]),
            change_kind=ChangeKind(data["change_kind"]),
            timestamp=data.get("timestamp", time.time()),
        )


@dataclass
class RawFSEvent:
    """
    Raw event from a native directory watch before processing.

    Attributes:
        event_type: Raw event type string (created, deleted, modified, moved)
        src_path: Source path of the event
        dest_path: Destination path (for move events)
        is_directory: Whether this is a directory event
        timestamp: Unix timestamp when the event occurred
    """
    event_type: str
    src_path: Path
    dest_path: Optional[Path] = None
    is_directory: bool = False
    timestamp: float = field(default_factory=time.time)

    @property
    def change_kind(self) -> Optional[ChangeKind]:
        return RAW_EVENT_KINDS.get(self.event_type)


@dataclass(frozen=True)
class WatchFault:
    """
    A fault recorded while watching.

    Attributes:
        stage: Where the fault happened (dispatch, subscriber, native, recovery)
        error: Error message
        error_type: Exception class name
        path: File or directory involved, if known
        timestamp: Unix timestamp when the fault was recorded
    """
    stage: str
    error: str
    error_type: str
    path: Optional[Path] = None
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def from_exception(
        cls,
        stage: str,
        exc: BaseException,
        path: Optional[Path] = None,
    ) -> "WatchFault":
        return cls(
            stage=stage,
            error=str(exc),
            error_type=type(exc).__name__,
            path=path,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "stage": self.stage,
            "error": self.error,
            "error_type": self.error_type,
            "path": str(self.path) if self.path else None,
            "timestamp": self.timestamp,
        }
