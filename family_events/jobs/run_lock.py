# family_events/jobs/run_lock.py
"""
Cross-process overlap guard for pipeline runs.

The nightly cron run and a manual CLI run must not interleave. A lock file
created with O_CREAT|O_EXCL marks the active run and holds its run_id.
A lock older than `stale_after_s` is assumed to belong to a crashed run
and is broken once.
"""
from __future__ import annotations

import logging
import os
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from ..config import RUN_LOCK_PATH, RUN_LOCK_STALE_S
from ..errors import RunInProgressError

logger = logging.getLogger(__name__)


def read_lock_holder(path: str) -> Optional[str]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read().strip() or None
    except FileNotFoundError:
        return None


def _lock_age_s(path: str, clock: Callable[[], float]) -> Optional[float]:
    try:
        return clock() - os.path.getmtime(path)
    except FileNotFoundError:
        return None


def acquire_lock(
    path: str,
    run_id: str,
    *,
    stale_after_s: float = RUN_LOCK_STALE_S,
    clock: Callable[[], float] = time.time,
) -> None:
    for attempt in range(2):
        try:
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            holder = read_lock_holder(path)
            age = _lock_age_s(path, clock)
            if age is None:
                # released between open() and stat()
                continue
            if attempt == 0 and age > stale_after_s:
                logger.warning(
                    "[run_lock] breaking stale lock path=%s holder=%s age_s=%.0f",
                    path, holder, age,
                )
                try:
                    os.unlink(path)
                except FileNotFoundError:
                    pass
                continue
            raise RunInProgressError(holder)

        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(run_id)
        logger.info("[run_lock] acquired path=%s run_id=%s", path, run_id)
        return

    raise RunInProgressError(read_lock_holder(path))


def release_lock(path: str, run_id: str) -> None:
    """Remove the lock file, but only if it still names this run."""
    holder = read_lock_holder(path)
    if holder is not None and holder != run_id:
        logger.warning("[run_lock] not releasing lock held by run_id=%s (ours=%s)", holder, run_id)
        return
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass


@contextmanager
def run_lock(
    path: str = RUN_LOCK_PATH,
    *,
    run_id: str,
    stale_after_s: float = RUN_LOCK_STALE_S,
    clock: Callable[[], float] = time.time,
) -> Iterator[str]:
    acquire_lock(path, run_id, stale_after_s=stale_after_s, clock=clock)
    try:
        yield run_id
    finally:
        release_lock(path, run_id)
