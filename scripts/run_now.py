#!/usr/bin/env python3
# scripts/run_now.py
"""
Manual trigger: run the pipeline once, right now.

Goes through the same RunCoordinator and lock file as the nightly run, so
it refuses to start while another run is active. With --detach the run is
started through RunCoordinator.trigger() and its status is polled and
printed until it finishes.

Usage:
  python -m scripts.run_now                       # dry run, all sources
  python -m scripts.run_now --source kdykde.cz    # dry run, one source
  python -m scripts.run_now --write               # persist to Supabase
  python -m scripts.run_now --detach --poll 5     # trigger, then poll status
"""
from __future__ import annotations

import argparse
import logging
import sys

from family_events.errors import RunInProgressError, UnknownSourceError
from family_events.jobs.trigger import STATUS_FAILED, STATUS_FINISHED, RunCoordinator, RunRecord
from family_events.pipeline import build_coordinator, default_deps


def _print_status(rec: RunRecord) -> None:
    print(f"[run_now] run_id={rec.run_id} status={rec.status} error={rec.error!r}")


def poll_until_done(coordinator: RunCoordinator, run_id: str, *, poll_s: float) -> RunRecord:
    while True:
        rec = coordinator.wait(run_id, timeout=poll_s)
        _print_status(rec)
        if rec.status in (STATUS_FINISHED, STATUS_FAILED):
            return rec


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Trigger one pipeline run now.")
    parser.add_argument("--source", default=None, help="Run a single source by name (default: all)")
    parser.add_argument("--write", action="store_true", help="Persist to Supabase (default: dry run).")
    parser.add_argument("--detach", action="store_true", help="Start in the background and poll its status.")
    parser.add_argument("--poll", type=float, default=10.0, help="Seconds between status lines with --detach.")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    coordinator = build_coordinator(default_deps(write=args.write))

    try:
        if args.detach:
            run_id = coordinator.trigger(args.source)
            print(f"[run_now] triggered run_id={run_id}")
            rec = poll_until_done(coordinator, run_id, poll_s=args.poll)
        else:
            rec = coordinator.run_blocking(args.source)
            _print_status(rec)
    except UnknownSourceError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    except RunInProgressError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    return 0 if rec.status == STATUS_FINISHED else 1


if __name__ == "__main__":
    raise SystemExit(main())
