"""Rebuilding directory watches after a native watch failure."""

import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from .diagnostics import Diagnostics
from .fs_watcher import WatcherLifecycleManager
from .locks import RebuildGate
from .registry import FileRegistry

logger = logging.getLogger(__name__)


class FailureRecoveryHandler:
    """
    Tears down and recreates every directory watch from the registry.

    A native failure means events may already have been dropped, so the
    handler does not try to repair the single failing watch. It rebuilds
    all of them from one registry snapshot while holding the rebuild gate
    exclusively, then restores the running mode captured before the
    rebuild. Events arriving while the watches are down are lost.
    """

    def __init__(
        self,
        registry: FileRegistry,
        lifecycle: WatcherLifecycleManager,
        gate: RebuildGate,
        is_running: Callable[[], bool],
        diagnostics: Optional[Diagnostics] = None,
        is_closed: Optional[Callable[[], bool]] = None,
    ):
        """
        Initialize the recovery handler.

        Args:
            registry: Source of truth for watched files
            lifecycle: Owner of the directory watches
            gate: Gate serializing rebuilds against registration
            is_running: Returns the current running mode
            diagnostics: Receives native failures and recovery faults
            is_closed: Returns True once the owner is disposed
        """
        self.registry = registry
        self.lifecycle = lifecycle
        self.gate = gate
        self.is_running = is_running
        self.diagnostics = diagnostics or Diagnostics()
        self.is_closed = is_closed or (lambda: False)
        self._recovering = False
        self._lock = threading.Lock()

    @property
    def recovering(self) -> bool:
        return self._recovering

    def on_watch_error(self, directory: Optional[Path], error: BaseException) -> None:
        """
        Native error callback. Never raises.

        Args:
            directory: Directory whose watch failed, if known
            error: The reported error
        """
        try:
            self.diagnostics.record_fault("native", error, directory)
            if self.is_closed():
                return
            self.recover()
        except Exception as e:
            self.diagnostics.record_fault("recovery", e, directory)

    def recover(self) -> int:
        """
        Rebuild every directory watch.

        A call made while another rebuild is running returns immediately;
        the running rebuild already covers it.

        Returns:
            Number of watches rebuilt
        """
        with self._lock:
            if self._recovering:
                self.diagnostics.count("recoveries_coalesced")
                logger.info("Watch rebuild already in progress, skipping")
                return 0
            self._recovering = True

        try:
            with self.gate.exclusive():
                if self.is_closed():
                    return 0

                running = self.is_running()
                self.lifecycle.set_all_enabled(False)
                snapshot = self.registry.directories_with_files()
                count = self.lifecycle.rebuild_from(snapshot, running)

            self.diagnostics.count("recoveries")
            logger.warning(
                f"Rebuilt {count} directory watch(es) after a watch failure "
                f"(running={running})"
            )
            return count
        finally:
            with self._lock:
                self._recovering = False
