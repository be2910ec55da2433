"""Webwrap – per-app launch lock.

Two launches of the same app must not swap the engine payload at the same
time. The lock is an flock() held on a file in the app's data directory for
the whole launch. The file also records the holder's PID, for messages only:
a lock left by a process that died is released by the OS, so there is no
stale-owner takeover.
"""

import atexit
import fcntl
import logging
import os

from errors import LockError

logger = logging.getLogger(__name__)

OPEN_ATTEMPTS = 3


def read_owner(path):
    """PID recorded in the lock file, or 0 if it can't be read."""
    try:
        with open(path, encoding="utf-8") as fh:
            return int(fh.read().strip() or 0)
    except (OSError, ValueError):
        return 0


class AppLock:
    """Exclusive lock on one app's data directory.

    Use as a context manager, or call acquire()/release(). Once acquired
    the lock is also released at interpreter exit.
    """

    def __init__(self, path, pid=None):
        self.path = path
        self.pid = pid or os.getpid()
        self.fd = None

    @property
    def held(self):
        return self.fd is not None

    def _is_current(self, fd):
        """True if *fd* is still the file at self.path."""
        try:
            st = os.stat(self.path)
        except FileNotFoundError:
            return False
        return os.path.samestat(st, os.fstat(fd))

    def acquire(self):
        os.makedirs(os.path.dirname(self.path), exist_ok=True)
        for _ in range(OPEN_ATTEMPTS):
            fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                os.close(fd)
                owner = read_owner(self.path)
                raise LockError(
                    "This app is already being launched by another process"
                    + (f" (PID {owner})." if owner else ".")
                ) from None
            except OSError:
                os.close(fd)
                raise
            # the previous holder may have removed the file after we opened it
            if self._is_current(fd):
                break
            logger.debug("Lock '%s' was replaced while locking. Retrying.", self.path)
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)
        else:
            raise LockError("Unable to acquire app lock.")

        previous = read_owner(self.path)
        if previous and previous != self.pid:
            logger.debug("Taking over lock file last held by PID %s.", previous)
        os.ftruncate(fd, 0)
        os.write(fd, f"{self.pid}\n".encode("utf-8"))

        self.fd = fd
        atexit.register(self.release)
        logger.debug("Acquired lock '%s'.", self.path)
        return self

    def release(self):
        if not self.held:
            return
        fd, self.fd = self.fd, None
        atexit.unregister(self.release)
        # unlink while still locked, so a waiter that opened it re-checks
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.error("Unable to remove lock '%s': %s", self.path, exc)
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)
        logger.debug("Released lock '%s'.", self.path)

    def __enter__(self):
        return self.acquire()

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False
