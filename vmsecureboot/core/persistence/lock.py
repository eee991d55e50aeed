"""
Module lock — serializes build/sign/permission work across invocations.

The interactive ``setup`` run and the boot-time ``autosign`` run both
rewrite the same .ko files. Whoever holds an exclusive ``flock`` on the
lock file owns the module directory; the other waits up to a timeout.
"""

from __future__ import annotations

import contextlib
import fcntl
import logging
import time
from collections.abc import Iterator
from pathlib import Path

from vmsecureboot.core.errors import LockTimeout

logger = logging.getLogger(__name__)

LOCK_POLL_SECONDS = 0.1


@contextlib.contextmanager
def exclusive_lock(lock_path: Path, timeout: float = 60) -> Iterator[Path]:
    """Hold an exclusive lock on ``lock_path`` for the duration of the block.

    Raises:
        LockTimeout: If the lock isn't acquired within ``timeout`` seconds.
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    handle = lock_path.open("a+", encoding="utf-8")
    deadline = time.monotonic() + max(timeout, 0.0)
    try:
        while True:
            try:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    raise LockTimeout(
                        f"Another invocation holds {lock_path}",
                        hint="Wait for the running setup or boot-time signing to finish.",
                    ) from None
                time.sleep(LOCK_POLL_SECONDS)

        logger.debug("Acquired module lock %s", lock_path)
        try:
            yield lock_path
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
            logger.debug("Released module lock %s", lock_path)
    finally:
        handle.close()
