# wanq/lock.py
import os
import shutil
import signal
from contextlib import contextmanager

from . import config


class LockHeld(Exception):
    """Another instance owns the lock."""


def _terminate(signum, frame):
    raise SystemExit(128 + signum)


@contextmanager
def instance_lock(path=None):
    """Hold an exclusive, non-blocking lock for the duration of the block.

    mkdir is atomic, so only one process can create the lock directory.
    SIGTERM/SIGHUP are turned into SystemExit so the directory is removed on
    every exit path.
    """
    path = path or config.LOCK_DIR
    try:
        os.mkdir(path)
    except FileExistsError:
        raise LockHeld(path) from None

    previous = {}
    try:
        for sig in (signal.SIGTERM, signal.SIGHUP):
            try:
                previous[sig] = signal.signal(sig, _terminate)
            except ValueError:
                # not the main thread; the finally block still cleans up
                pass
        with open(os.path.join(path, "pid"), "w") as f:
            f.write(str(os.getpid()))
        yield path
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
        shutil.rmtree(path, ignore_errors=True)
