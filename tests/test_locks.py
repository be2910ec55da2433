import fcntl
import os

import pytest

import locks
from errors import LockError

DEAD_PID = 2 ** 22 + 12345


def test_acquire_and_release(tmp_path):
    path = str(tmp_path / "Apps" / "MyApp" / "lock")
    with locks.AppLock(path) as lock:
        assert lock.held
        assert locks.read_owner(path) == os.getpid()
    assert not lock.held
    assert not os.path.exists(path)


def test_held_lock_blocks(tmp_path):
    path = str(tmp_path / "lock")
    with locks.AppLock(path):
        other = locks.AppLock(path, pid=os.getpid() + 1)
        with pytest.raises(LockError, match=f"PID {os.getpid()}"):
            other.acquire()
        assert not other.held
        assert locks.read_owner(path) == os.getpid()


def test_leftover_file_is_reused(tmp_path):
    path = tmp_path / "lock"
    path.write_text(f"{DEAD_PID}\n")
    lock = locks.AppLock(str(path)).acquire()
    assert locks.read_owner(str(path)) == os.getpid()
    lock.release()
    assert not path.exists()


def test_garbage_lock_file_is_reused(tmp_path):
    path = tmp_path / "lock"
    path.write_text("not a pid")
    lock = locks.AppLock(str(path)).acquire()
    assert lock.held
    lock.release()
    assert not path.exists()


def test_acquire_during_another_acquire(tmp_path, monkeypatch):
    """A takes the lock while B is between opening the file and locking it."""
    (tmp_path / "lock").write_text(f"{DEAD_PID}\n")
    path = str(tmp_path / "lock")
    a = locks.AppLock(path, pid=111111)
    b = locks.AppLock(path, pid=222222)
    real_flock = fcntl.flock
    state = {"interleaved": False}

    def flock(fd, op):
        if not state["interleaved"] and op & fcntl.LOCK_EX:
            state["interleaved"] = True
            a.acquire()
        return real_flock(fd, op)

    monkeypatch.setattr(locks.fcntl, "flock", flock)
    with pytest.raises(LockError, match="PID 111111"):
        b.acquire()
    assert a.held and not b.held
    assert locks.read_owner(path) == 111111
    a.release()


def test_lock_replaced_while_locking(tmp_path, monkeypatch):
    """B opened the file just before A released it and C took a new one."""
    path = str(tmp_path / "lock")
    a = locks.AppLock(path, pid=111111).acquire()
    b = locks.AppLock(path, pid=222222)
    c = locks.AppLock(path, pid=333333)
    real_flock = fcntl.flock
    state = {"interleaved": False}

    def flock(fd, op):
        if not state["interleaved"] and op & fcntl.LOCK_EX:
            state["interleaved"] = True
            a.release()
            c.acquire()
        return real_flock(fd, op)

    monkeypatch.setattr(locks.fcntl, "flock", flock)
    with pytest.raises(LockError, match="PID 333333"):
        b.acquire()
    assert c.held and not b.held
    assert locks.read_owner(path) == 333333
    c.release()


def test_release_is_idempotent(tmp_path):
    lock = locks.AppLock(str(tmp_path / "lock")).acquire()
    lock.release()
    lock.release()
    assert not lock.held
