import fcntl
import time
from contextlib import contextmanager

from .logging import logger


class UnmountLock:
    """
    Node-wide lock that lets one unmount sequence run at a time.
    Unmounts trigger device rescans, which are expensive and must not overlap.

    Every acquisition opens its own file description, so threads of one process
    exclude each other just like separate processes do. The kernel drops the lock
    when its holder dies.
    """

    RETRY_INTERVAL = 0.5

    def __init__(self, path, interval=RETRY_INTERVAL):
        self.path = str(path)
        self.interval = interval

    def try_acquire(self):
        lock_file = open(self.path, "a")
        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            lock_file.close()
            return None
        except OSError:
            lock_file.close()
            raise
        return lock_file

    def acquire(self):
        """Block until the lock is ours. There is no timeout."""
        while (lock_file := self.try_acquire()) is None:
            logger.debug(f"{self.path} is locked, retrying in {self.interval}s")
            time.sleep(self.interval)
        return lock_file

    def release(self, lock_file):
        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
        finally:
            lock_file.close()

    @contextmanager
    def held(self, owner=""):
        logger.debug(f"Ask for unmount lock for {owner}")
        lock_file = self.acquire()
        logger.debug(f"Got unmount lock for {owner}")
        try:
            yield
        finally:
            self.release(lock_file)
            logger.debug(f"Released unmount lock for {owner}")
