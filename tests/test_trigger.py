# tests/test_trigger.py
"""
RunCoordinator: one active run per process, manual and scheduled runs share
the same lock.
"""
from __future__ import annotations

import threading
from types import SimpleNamespace

import pytest

from family_events.errors import RunInProgressError, UnknownSourceError
from family_events.jobs.trigger import (
    STATUS_FAILED,
    STATUS_FINISHED,
    RunCoordinator,
)

SOURCES = ["goout.net", "kdykde.cz"]


class BlockingRunner:
    """Holds the run open until release() is called."""

    def __init__(self):
        self.started = threading.Event()
        self.gate = threading.Event()
        self.calls: list[tuple] = []

    def __call__(self, source, run_id):
        self.calls.append((source, run_id))
        self.started.set()
        self.gate.wait(5)
        return SimpleNamespace(fatal=None, upserted=3)

    def release(self):
        self.gate.set()


def _coordinator(runner) -> RunCoordinator:
    return RunCoordinator(runner, available_sources=lambda: list(SOURCES))


def test_trigger_returns_immediately_and_finishes():
    runner = BlockingRunner()
    coord = _coordinator(runner)

    run_id = coord.trigger("goout.net")
    assert runner.started.wait(5)
    assert coord.active_run_id == run_id

    runner.release()
    rec = coord.wait(run_id, timeout=5)

    assert rec.status == STATUS_FINISHED
    assert rec.summary.upserted == 3
    assert rec.started_at is not None and rec.finished_at is not None
    assert runner.calls == [("goout.net", run_id)]
    assert coord.active_run_id is None


def test_second_trigger_while_running_is_rejected():
    runner = BlockingRunner()
    coord = _coordinator(runner)

    first = coord.trigger()
    assert runner.started.wait(5)

    with pytest.raises(RunInProgressError) as exc:
        coord.trigger("kdykde.cz")
    assert exc.value.active_run_id == first

    with pytest.raises(RunInProgressError):
        coord.run_blocking()

    runner.release()
    coord.wait(first, timeout=5)

    # lock is free again
    second = coord.trigger("kdykde.cz")
    coord.wait(second, timeout=5)
    assert len(runner.calls) == 2


def test_unknown_source_creates_no_run():
    coord = _coordinator(lambda source, run_id: SimpleNamespace(fatal=None))
    with pytest.raises(UnknownSourceError) as exc:
        coord.trigger("nope.cz")
    assert exc.value.available == SOURCES
    assert coord.active_run_id is None


def test_run_blocking():
    coord = _coordinator(lambda source, run_id: SimpleNamespace(fatal=None, run_id=run_id))
    rec = coord.run_blocking()
    assert rec.status == STATUS_FINISHED
    assert rec.source is None
    assert rec.summary.run_id == rec.run_id


def test_runner_exception_marks_failed():
    def runner(source, run_id):
        raise ConnectionError("db down")

    coord = _coordinator(runner)
    rec = coord.run_blocking("goout.net")
    assert rec.status == STATUS_FAILED
    assert rec.error == "ConnectionError: db down"
    assert coord.active_run_id is None


def test_fatal_summary_marks_failed():
    coord = _coordinator(lambda source, run_id: SimpleNamespace(fatal="RuntimeError: boom"))
    rec = coord.run_blocking()
    assert rec.status == STATUS_FAILED
    assert rec.error == "RuntimeError: boom"


def test_status_is_a_snapshot():
    coord = _coordinator(lambda source, run_id: SimpleNamespace(fatal=None))
    rec = coord.run_blocking()
    rec.status = "tampered"
    assert coord.status(rec.run_id).status == STATUS_FINISHED
    assert coord.status("missing") is None


class TestRunNowScript:
    @pytest.fixture
    def run_now(self, monkeypatch):
        from scripts import run_now

        monkeypatch.setattr(run_now, "default_deps", lambda *, write: None)
        return run_now

    def test_detach_triggers_and_polls(self, run_now, monkeypatch, capsys):
        runner = BlockingRunner()
        runner.release()
        monkeypatch.setattr(run_now, "build_coordinator", lambda deps: _coordinator(runner))

        assert run_now.main(["--detach", "--poll", "0.01", "--source", "kdykde.cz"]) == 0

        out = capsys.readouterr().out
        assert "[run_now] triggered run_id=" in out
        assert "status=finished" in out
        assert runner.calls[0][0] == "kdykde.cz"

    def test_blocking_failure_exit_code(self, run_now, monkeypatch):
        def runner(source, run_id):
            raise ConnectionError("db down")

        monkeypatch.setattr(run_now, "build_coordinator", lambda deps: _coordinator(runner))
        assert run_now.main([]) == 1

    def test_unknown_source_exit_code(self, run_now, monkeypatch, capsys):
        monkeypatch.setattr(run_now, "build_coordinator", lambda deps: _coordinator(BlockingRunner()))
        assert run_now.main(["--source", "nope.cz"]) == 2
        assert "Unknown source: nope.cz" in capsys.readouterr().err
