"""Tests for wg_tracker/utils/lock.py."""

from wg_tracker.utils.lock import ProcessLock


def test_acquire_and_release(tmp_path) -> None:
    lock = ProcessLock(tmp_path / "lock")

    assert lock.acquire()
    assert lock.held
    lock.release()
    assert not lock.held


def test_second_holder_is_refused(tmp_path) -> None:
    first = ProcessLock(tmp_path / "lock")
    second = ProcessLock(tmp_path / "lock")

    assert first.acquire()
    try:
        assert not second.acquire()
        assert not second.held
    finally:
        first.release()

    assert second.acquire()
    second.release()


def test_acquire_is_reentrant_for_holder(tmp_path) -> None:
    lock = ProcessLock(tmp_path / "lock")

    assert lock.acquire()
    assert lock.acquire()
    lock.release()


def test_creates_parent_directory(tmp_path) -> None:
    lock = ProcessLock(tmp_path / "state" / "lock")

    with lock as acquired:
        assert acquired
        assert (tmp_path / "state" / "lock").exists()
    assert not lock.held


def test_release_without_acquire_is_noop(tmp_path) -> None:
    ProcessLock(tmp_path / "lock").release()
