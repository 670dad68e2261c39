"""Tests for filesystem watcher module."""

import pytest
import time
import threading

from watchdog.events import (
    DirDeletedEvent,
    DirModifiedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from src.filewatch.exceptions import WatchFailureError
from src.filewatch.fs_watcher import DirectoryWatch, FSEventHandler, WatcherLifecycleManager


class TestFSEventHandler:
    """Tests for FSEventHandler class."""

    def _handler(self, tmp_path):
        events = []
        errors = []
        handler = FSEventHandler(
            events.append,
            tmp_path,
            on_error=lambda directory, exc: errors.append((directory, exc)),
        )
        return handler, events, errors

    def test_file_events_converted(self, tmp_path):
        handler, events, _ = self._handler(tmp_path)

        handler.on_created(FileCreatedEvent(str(tmp_path / "a.txt")))
        handler.on_modified(FileModifiedEvent(str(tmp_path / "a.txt")))
        handler.on_deleted(FileDeletedEvent(str(tmp_path / "a.txt")))

        assert [e.event_type for e in events] == ["created", "modified", "deleted"]
        assert all(e.src_path == tmp_path / "a.txt" for e in events)

    def test_move_carries_destination(self, tmp_path):
        handler, events, _ = self._handler(tmp_path)

        handler.on_moved(FileMovedEvent(str(tmp_path / "a.txt"), str(tmp_path / "b.txt")))

        assert len(events) == 1
        assert events[0].event_type == "moved"
        assert events[0].src_path == tmp_path / "a.txt"
        assert events[0].dest_path == tmp_path / "b.txt"

    def test_directory_events_ignored(self, tmp_path):
        handler, events, errors = self._handler(tmp_path)

        handler.on_modified(DirModifiedEvent(str(tmp_path)))
        handler.on_deleted(DirDeletedEvent(str(tmp_path / "sub")))

        assert events == []
        assert errors == []

    def test_watched_directory_deletion_reported(self, tmp_path):
        handler, events, errors = self._handler(tmp_path)

        handler.on_deleted(DirDeletedEvent(str(tmp_path)))

        assert events == []
        assert len(errors) == 1
        assert errors[0][0] == tmp_path
        assert isinstance(errors[0][1], WatchFailureError)


class TestWatcherLifecycleManager:
    """Tests for WatcherLifecycleManager with an in-memory watch."""

    def _manager(self, fake_factory):
        events = []
        errors = []
        failures = []
        manager = WatcherLifecycleManager(
            events.append,
            lambda directory, exc: errors.append(directory),
            fake_factory,
            on_failure=lambda directory, exc: failures.append(directory),
        )
        return manager, events, errors, failures

    def test_create_manager(self, fake_factory):
        manager, _, _, _ = self._manager(fake_factory)
        assert len(manager) == 0
        assert manager.enabled is False

    def test_ensure_watch(self, fake_factory, tmp_path):
        manager, _, _, _ = self._manager(fake_factory)

        assert manager.ensure_watch(tmp_path) is True
        assert manager.ensure_watch(tmp_path) is False

        assert len(manager) == 1
        assert len(fake_factory.created) == 1
        assert manager.is_watching(tmp_path)
        assert manager.get_watch(tmp_path) is fake_factory.created[0]

    def test_new_watch_mirrors_mode(self, fake_factory, tmp_path):
        manager, _, _, _ = self._manager(fake_factory)
        sub = tmp_path / "sub"

        manager.ensure_watch(tmp_path)
        manager.set_all_enabled(True)
        manager.ensure_watch(sub)

        assert manager.get_watch(tmp_path).enabled is True
        assert manager.get_watch(sub).enabled is True

    def test_ensure_watch_arm_failure(self, fake_factory, tmp_path):
        manager, _, _, _ = self._manager(fake_factory)
        manager.set_all_enabled(True)
        fake_factory.fail_arm = True

        with pytest.raises(WatchFailureError):
            manager.ensure_watch(tmp_path)

        assert len(manager) == 0
        assert fake_factory.created[0].closed is True

    def test_ensure_watch_arms_directories_in_parallel(self, fake_factory, tmp_path):
        manager, _, _, _ = self._manager(fake_factory)
        manager.set_all_enabled(True)
        fake_factory.arm_delay = 0.3
        directories = [tmp_path / f"d{i}" for i in range(4)]
        barrier = threading.Barrier(len(directories))
        results = []

        def arm(directory):
            barrier.wait()
            results.append(manager.ensure_watch(directory))

        threads = [threading.Thread(target=arm, args=(d,)) for d in directories]
        start = time.monotonic()
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        elapsed = time.monotonic() - start

        assert results == [True] * 4
        assert len(manager) == 4
        # Serialized arming would take 4 * 0.3s
        assert elapsed < 0.9

    def test_ensure_watch_same_directory_race(self, fake_factory, tmp_path):
        manager, _, _, _ = self._manager(fake_factory)
        manager.set_all_enabled(True)
        fake_factory.arm_delay = 0.2
        barrier = threading.Barrier(2)
        results = []

        def arm():
            barrier.wait()
            results.append(manager.ensure_watch(tmp_path))

        threads = [threading.Thread(target=arm) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(results) == [False, True]
        assert len(manager) == 1
        assert [w for w in fake_factory.created if not w.closed] == [manager.get_watch(tmp_path)]

    def test_ensure_watch_follows_stop_while_arming(self, fake_factory, tmp_path):
        manager, _, _, _ = self._manager(fake_factory)
        manager.set_all_enabled(True)
        fake_factory.arm_delay = 0.3

        worker = threading.Thread(target=manager.ensure_watch, args=(tmp_path,))
        worker.start()
        time.sleep(0.1)
        manager.set_all_enabled(False)
        worker.join()

        watch = manager.get_watch(tmp_path)
        assert watch.enabled is False
        assert watch.toggles[-1] is False

    def test_release_watch(self, fake_factory, tmp_path):
        manager, _, _, _ = self._manager(fake_factory)
        manager.ensure_watch(tmp_path)

        assert manager.release_watch(tmp_path) is True
        assert manager.release_watch(tmp_path) is False
        assert len(manager) == 0
        assert fake_factory.created[0].closed is True

    def test_set_all_enabled(self, fake_factory, tmp_path):
        manager, _, _, _ = self._manager(fake_factory)
        manager.ensure_watch(tmp_path)
        manager.ensure_watch(tmp_path / "sub")

        manager.set_all_enabled(True)
        assert all(w.enabled for w in fake_factory.created)

        manager.set_all_enabled(False)
        assert not any(w.enabled for w in fake_factory.created)

    def test_set_all_enabled_reports_failures(self, fake_factory, tmp_path):
        manager, _, _, failures = self._manager(fake_factory)
        manager.ensure_watch(tmp_path)
        fake_factory.fail_arm = True

        manager.set_all_enabled(True)

        assert failures == [tmp_path]
        assert manager.enabled is True

    def test_rebuild_from(self, fake_factory, tmp_path):
        manager, _, _, _ = self._manager(fake_factory)
        a = tmp_path / "a"
        b = tmp_path / "b"
        manager.ensure_watch(a)
        old = fake_factory.created[0]

        count = manager.rebuild_from(frozenset({a, b}), enabled=True)

        assert count == 2
        assert old.closed is True
        assert manager.get_watch(a) is not old
        assert manager.get_watch(a).enabled is True
        assert manager.get_watch(b).enabled is True
        assert manager.enabled is True

    def test_rebuild_from_drops_directories_not_in_snapshot(self, fake_factory, tmp_path):
        manager, _, _, _ = self._manager(fake_factory)
        manager.ensure_watch(tmp_path / "a")
        manager.ensure_watch(tmp_path / "b")

        count = manager.rebuild_from(frozenset({tmp_path / "a"}), enabled=False)

        assert count == 1
        assert not manager.is_watching(tmp_path / "b")
        assert manager.get_watch(tmp_path / "a").enabled is False

    def test_rebuild_from_keeps_failed_handle(self, fake_factory, tmp_path):
        manager, _, _, failures = self._manager(fake_factory)
        fake_factory.fail_arm = True

        count = manager.rebuild_from(frozenset({tmp_path}), enabled=True)

        assert count == 1
        assert failures == [tmp_path]
        # Already reported, so the next health check re-arms instead of reporting
        fake_factory.fail_arm = False
        assert manager.check_health() == []
        assert manager.get_watch(tmp_path).armed is True

    def test_release_all(self, fake_factory, tmp_path):
        manager, _, _, _ = self._manager(fake_factory)
        manager.ensure_watch(tmp_path / "a")
        manager.ensure_watch(tmp_path / "b")

        assert manager.release_all() == 2
        assert len(manager) == 0
        assert all(w.closed for w in fake_factory.created)

    def test_check_health_reports_once_then_rearms(self, fake_factory, tmp_path):
        manager, _, _, _ = self._manager(fake_factory)
        manager.ensure_watch(tmp_path)
        manager.set_all_enabled(True)
        watch = manager.get_watch(tmp_path)

        watch.healthy = False
        assert manager.check_health() == [tmp_path]

        # Still failing on the next health check: re-armed in place, not reported
        assert manager.check_health() == []
        assert watch.healthy is True
        assert watch.toggles[-1] is True

    def test_check_health_ignores_disabled(self, fake_factory, tmp_path):
        manager, _, _, _ = self._manager(fake_factory)
        manager.ensure_watch(tmp_path)
        manager.get_watch(tmp_path).healthy = False

        assert manager.check_health() == []

    def test_get_watched_directories(self, fake_factory, tmp_path):
        manager, _, _, _ = self._manager(fake_factory)
        manager.ensure_watch(tmp_path / "a")
        manager.ensure_watch(tmp_path / "b")

        assert sorted(manager.get_watched_directories()) == [tmp_path / "a", tmp_path / "b"]

    def test_handles_forward_events_and_errors(self, fake_factory, tmp_path):
        manager, events, errors, _ = self._manager(fake_factory)
        manager.ensure_watch(tmp_path)
        manager.set_all_enabled(True)
        watch = manager.get_watch(tmp_path)

        watch.fire("modified", "a.txt")
        watch.fail()

        assert len(events) == 1
        assert errors == [tmp_path]


class TestDirectoryWatch:
    """Tests for DirectoryWatch against the real watchdog observer."""

    def _collector(self):
        events = []
        lock = threading.Lock()

        def callback(event):
            with lock:
                events.append(event)

        return events, lock, callback

    def test_disabled_by_default(self, tmp_path):
        watch = DirectoryWatch(tmp_path, lambda e: None, lambda d, e: None)
        assert watch.enabled is False
        assert watch.armed is False
        assert watch.is_healthy() is True

    def test_enable_and_disable(self, tmp_path):
        watch = DirectoryWatch(tmp_path, lambda e: None, lambda d, e: None)

        watch.set_enabled(True)
        assert watch.armed is True
        assert watch.is_healthy() is True

        watch.set_enabled(False)
        assert watch.armed is False

    def test_detects_file_modification(self, tmp_path):
        test_file = tmp_path / "test.txt"
        test_file.write_text("initial")
        events, lock, callback = self._collector()

        watch = DirectoryWatch(tmp_path, callback, lambda d, e: None)
        watch.set_enabled(True)

        # Give watcher time to start
        time.sleep(0.2)
        test_file.write_text("modified")
        time.sleep(0.5)

        watch.close()

        with lock:
            modify_events = [
                e for e in events
                if e.event_type == "modified" and e.src_path.name == "test.txt"
            ]
        assert len(modify_events) >= 1

    def test_detects_file_move(self, tmp_path):
        old_file = tmp_path / "old.txt"
        old_file.write_text("content")
        events, lock, callback = self._collector()

        watch = DirectoryWatch(tmp_path, callback, lambda d, e: None)
        watch.set_enabled(True)

        time.sleep(0.2)
        old_file.rename(tmp_path / "new.txt")
        time.sleep(0.5)

        watch.close()

        with lock:
            move_events = [e for e in events if e.event_type == "moved"]
        assert len(move_events) >= 1
        assert move_events[0].src_path.name == "old.txt"
        assert move_events[0].dest_path.name == "new.txt"

    def test_not_recursive(self, tmp_path):
        sub = tmp_path / "sub"
        sub.mkdir()
        events, lock, callback = self._collector()

        watch = DirectoryWatch(tmp_path, callback, lambda d, e: None)
        watch.set_enabled(True)

        time.sleep(0.2)
        (sub / "deep.txt").write_text("x")
        time.sleep(0.5)

        watch.close()

        with lock:
            deep = [e for e in events if e.src_path.name == "deep.txt"]
        assert deep == []

    def test_disabled_watch_delivers_nothing(self, tmp_path):
        events, lock, callback = self._collector()
        watch = DirectoryWatch(tmp_path, callback, lambda d, e: None)
        watch.set_enabled(True)
        watch.set_enabled(False)

        (tmp_path / "quiet.txt").write_text("x")
        time.sleep(0.3)

        with lock:
            assert events == []

    def test_stopped_observer_is_unhealthy(self, tmp_path):
        watch = DirectoryWatch(tmp_path, lambda e: None, lambda d, e: None)
        watch.set_enabled(True)

        observer = watch._observer
        observer.stop()
        observer.join(timeout=5)

        assert watch.is_healthy() is False

        # Re-enabling replaces the dead observer
        watch.set_enabled(True)
        assert watch.is_healthy() is True
        watch.close()

    def test_missing_directory_raises(self, tmp_path):
        watch = DirectoryWatch(tmp_path / "missing", lambda e: None, lambda d, e: None)

        with pytest.raises(WatchFailureError) as exc_info:
            watch.set_enabled(True)

        assert exc_info.value.directory == tmp_path / "missing"
        assert watch.armed is False
