"""Shared fixtures: an in-memory native watch that tests drive by hand."""

import os
import time
from pathlib import Path
from typing import Dict, List

import pytest

from src.filewatch.exceptions import WatchFailureError
from src.filewatch.fs_watcher import NativeWatch
from src.filewatch.models import RawFSEvent


class FakeWatch(NativeWatch):
    """NativeWatch whose events, errors and health are set by the test."""

    def __init__(self, directory, on_event, on_error, factory):
        super().__init__(directory, on_event, on_error)
        self.factory = factory
        self.healthy = True
        self.armed = False
        self.closed = False
        self.toggles: List[bool] = []

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled
        self.armed = False
        if enabled and self.factory.arm_delay:
            time.sleep(self.factory.arm_delay)
        if enabled and self.factory.fail_arm:
            raise WatchFailureError(f"cannot arm {self.directory}", directory=self.directory)
        self.toggles.append(enabled)
        if enabled:
            self.armed = True
            self.healthy = True

    def is_healthy(self) -> bool:
        return not self._enabled or (self.armed and self.healthy)

    def close(self) -> None:
        super().close()
        self.closed = True

    def fire(self, event_type: str, name: str, dest_name: str = None) -> None:
        """Deliver a raw event for a file in this directory if enabled."""
        if not self.armed:
            return
        self.on_event(RawFSEvent(
            event_type=event_type,
            src_path=self.directory / name,
            dest_path=self.directory / dest_name if dest_name else None,
        ))

    def fail(self, error: BaseException = None) -> None:
        """Report a native error."""
        self.on_error(self.directory, error or OSError("internal buffer overflow"))


class FakeWatchFactory:
    """WatchFactory recording every handle it creates."""

    def __init__(self):
        self.created: List[FakeWatch] = []
        self.fail_arm = False
        self.arm_delay = 0.0

    def __call__(self, directory, on_event, on_error) -> FakeWatch:
        watch = FakeWatch(directory, on_event, on_error, self)
        self.created.append(watch)
        return watch

    def live(self) -> Dict[Path, FakeWatch]:
        """Handles that have not been closed, by directory."""
        return {w.directory: w for w in self.created if not w.closed}

    def watch_for(self, directory: Path) -> FakeWatch:
        return self.live()[Path(os.path.abspath(directory))]


@pytest.fixture
def fake_factory():
    return FakeWatchFactory()
