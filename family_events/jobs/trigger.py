# family_events/jobs/trigger.py
"""
In-process run coordination: manual triggers and the scheduled run share
one lock, so at most one pipeline run is active per process.

  trigger(source)       -> run_id immediately, run continues in a thread
  run_blocking(source)  -> scheduled entry point, same lock, waits
  status(run_id)        -> RunRecord snapshot

A trigger while a run is active raises RunInProgressError carrying the
active run id. Unknown source names raise UnknownSourceError before any
run is created. Cross-process overlap is handled by jobs.run_lock.
"""
from __future__ import annotations

import dataclasses
import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ..errors import RunInProgressError, UnknownSourceError

logger = logging.getLogger(__name__)

STATUS_QUEUED = "queued"
STATUS_RUNNING = "running"
STATUS_FINISHED = "finished"
STATUS_FAILED = "failed"

# runner(source, run_id) -> RunSummary
Runner = Callable[[Optional[str], str], Any]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RunRecord:
    run_id: str
    source: Optional[str]
    status: str = STATUS_QUEUED
    created_at: datetime = dataclasses.field(default_factory=_utc_now)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    summary: Any = None
    error: Optional[str] = None


class RunCoordinator:
    def __init__(
        self,
        runner: Runner,
        *,
        available_sources: Optional[Callable[[], List[str]]] = None,
    ) -> None:
        self._runner = runner
        self._available_sources = available_sources
        self._lock = threading.Lock()
        self._active_run_id: Optional[str] = None
        self._runs: Dict[str, RunRecord] = {}
        self._threads: Dict[str, threading.Thread] = {}

    @property
    def active_run_id(self) -> Optional[str]:
        with self._lock:
            return self._active_run_id

    def _check_source(self, source: Optional[str]) -> None:
        if source is None or self._available_sources is None:
            return
        names = self._available_sources()
        if source not in names:
            raise UnknownSourceError(source, names)

    def _claim(self, source: Optional[str]) -> str:
        with self._lock:
            if self._active_run_id is not None:
                raise RunInProgressError(self._active_run_id)
            run_id = str(uuid.uuid4())
            self._runs[run_id] = RunRecord(run_id=run_id, source=source)
            self._active_run_id = run_id
        logger.info("[trigger] queued run_id=%s source=%s", run_id, source or "all")
        return run_id

    def _execute(self, run_id: str, source: Optional[str]) -> None:
        with self._lock:
            rec = self._runs[run_id]
            rec.status = STATUS_RUNNING
            rec.started_at = _utc_now()

        status = STATUS_FINISHED
        summary = None
        error = None
        try:
            summary = self._runner(source, run_id)
            fatal = getattr(summary, "fatal", None)
            if fatal:
                status = STATUS_FAILED
                error = fatal
        except Exception as e:
            status = STATUS_FAILED
            error = f"{type(e).__name__}: {e}"
            logger.exception("[trigger] run FAILED run_id=%s", run_id)
        finally:
            with self._lock:
                rec = self._runs[run_id]
                rec.status = status
                rec.summary = summary
                rec.error = error
                rec.finished_at = _utc_now()
                self._active_run_id = None
            logger.info("[trigger] done run_id=%s status=%s", run_id, status)

    def trigger(self, source: Optional[str] = None) -> str:
        """Start a run in the background and return its id right away."""
        self._check_source(source)
        run_id = self._claim(source)
        t = threading.Thread(
            target=self._execute,
            args=(run_id, source),
            name=f"pipeline-{run_id[:8]}",
            daemon=True,
        )
        with self._lock:
            self._threads[run_id] = t
        t.start()
        return run_id

    def run_blocking(self, source: Optional[str] = None) -> RunRecord:
        self._check_source(source)
        run_id = self._claim(source)
        self._execute(run_id, source)
        return self.status(run_id)

    def status(self, run_id: str) -> Optional[RunRecord]:
        with self._lock:
            rec = self._runs.get(run_id)
            return dataclasses.replace(rec) if rec is not None else None

    def wait(self, run_id: str, timeout: Optional[float] = None) -> Optional[RunRecord]:
        with self._lock:
            t = self._threads.get(run_id)
        if t is not None:
            t.join(timeout)
        return self.status(run_id)
