"""
Nightly pipeline: scrape -> dedupe -> spatial filter -> score -> persist -> prune.

One run is a single logical worker. Each stage consumes only the previous
stage's output and writes one audit entry. Failures are contained at the
smallest unit that hit them:

  scraper fetch / payload   -> source logged, excluded from the run
  geocode miss              -> record kept without coordinates
  out of radius             -> record dropped
  scoring one record        -> record skipped
  upsert one record         -> logged, next record
  cleanup                   -> logged, run still counts its writes
  anything else             -> run aborted, logged as source="workflow"

run_pipeline() never raises. A deterministic summary line is printed at
the end of every run:

  grep '[pipeline][summary]' /var/log/family_events.log

Usage:
  python -m family_events.pipeline                    # dry run, all sources
  python -m family_events.pipeline --source goout.net # dry run, one source
  python -m family_events.pipeline --write            # persist to Supabase
"""
from __future__ import annotations

import argparse
import logging
import sys
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence

from . import config
from .canonicalize.dedupe import deduplicate
from .db.scrape_log import (
    STATUS_ERROR,
    STATUS_PARTIAL,
    STATUS_SUCCESS,
    AuditSink,
    MemoryScrapeLog,
    ScrapeLogEntry,
    SupabaseScrapeLog,
)
from .errors import RunInProgressError, UnknownSourceError
from .geo.geocoding import NominatimGeocoder, SpatialResolver
from .geo.spatial_filter import filter_by_location
from .jobs.run_lock import run_lock
from .jobs.trigger import STATUS_FINISHED, RunCoordinator
from .models import DayWeather, RawRecord, ScoredRecord
from .scoring.engine import score_for_all_profiles
from .sources.base import BaseScraper
from .sources.registry import available_sources, get_scrapers
from .storage import EventStore, InMemoryEventStore, SupabaseEventStore, get_supabase
from .weather import WeatherService, weather_for_date

logger = logging.getLogger(__name__)

MAX_ERROR_TEXT = 1000


@dataclass
class RunSummary:
    run_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None

    sources_run: int = 0
    sources_failed: int = 0
    scraped: int = 0
    scrape_errors: int = 0

    deduplicated: int = 0

    geo_kept: int = 0
    geo_unresolved: int = 0
    dropped_no_location: int = 0
    dropped_out_of_radius: int = 0

    forecast_days: int = 0
    scored: int = 0
    scoring_errors: int = 0

    upserted: int = 0
    upsert_errors: int = 0

    cleaned: int = 0
    cleanup_failed: bool = False

    fatal: Optional[str] = None
    duration_ms: int = 0
    records: List[ScoredRecord] = field(default_factory=list, repr=False)

    @property
    def errors(self) -> int:
        return (
            self.sources_failed
            + self.scoring_errors
            + self.upsert_errors
            + int(self.cleanup_failed)
            + int(self.fatal is not None)
        )

    @property
    def status(self) -> str:
        if self.fatal is not None:
            return STATUS_ERROR
        if self.errors or self.scrape_errors:
            return STATUS_PARTIAL
        return STATUS_SUCCESS

    def summary_line(self) -> str:
        return (
            f"[pipeline][summary]"
            f" run_id={self.run_id}"
            f" status={self.status}"
            f" sources_run={self.sources_run}"
            f" sources_failed={self.sources_failed}"
            f" scraped={self.scraped}"
            f" scrape_errors={self.scrape_errors}"
            f" deduplicated={self.deduplicated}"
            f" geo_kept={self.geo_kept}"
            f" geo_unresolved={self.geo_unresolved}"
            f" dropped_no_location={self.dropped_no_location}"
            f" dropped_out_of_radius={self.dropped_out_of_radius}"
            f" scored={self.scored}"
            f" scoring_errors={self.scoring_errors}"
            f" upserted={self.upserted}"
            f" upsert_errors={self.upsert_errors}"
            f" cleaned={self.cleaned}"
            f" errors={self.errors}"
            f" fatal={'yes' if self.fatal is not None else 'no'}"
        )


# ---------------------------------------------------------------------------
# Audit helpers
# ---------------------------------------------------------------------------

def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _error_text(errors: Sequence[str]) -> Optional[str]:
    if not errors:
        return None
    text = "; ".join(errors)
    if len(text) > MAX_ERROR_TEXT:
        text = text[: MAX_ERROR_TEXT - 3] + "..."
    return text


def _stage_status(errors: int, ok: int) -> str:
    if not errors:
        return STATUS_SUCCESS
    return STATUS_PARTIAL if ok else STATUS_ERROR


def _audit(
    audit: AuditSink,
    run_id: str,
    source: str,
    status: str,
    *,
    count_found: int = 0,
    error_text: Optional[str] = None,
    duration_ms: Optional[int] = None,
) -> None:
    entry = ScrapeLogEntry(
        source=source,
        status=status,
        count_found=count_found,
        error_text=error_text,
        duration_ms=duration_ms,
        run_id=run_id,
    )
    try:
        audit.log(entry)
    except Exception as e:
        logger.error("[pipeline] audit write FAILED (non-fatal) source=%s: %s: %s", source, type(e).__name__, e)


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

def _scrape(
    scrapers: Sequence[BaseScraper],
    summary: RunSummary,
    audit: AuditSink,
    *,
    delay_s: float,
    sleep: Callable[[float], None],
) -> List[RawRecord]:
    records: List[RawRecord] = []

    for i, scraper in enumerate(scrapers):
        if i > 0 and delay_s > 0:
            sleep(delay_s)

        started = time.monotonic()
        name = getattr(scraper, "name", type(scraper).__name__)
        summary.sources_run += 1
        try:
            result = scraper.run()
        except Exception as e:
            summary.sources_failed += 1
            msg = f"{type(e).__name__}: {e}"
            logger.error("[pipeline] SCRAPER_ERROR source=%s | %s", name, msg)
            _audit(audit, summary.run_id, name, STATUS_ERROR, error_text=msg, duration_ms=_elapsed_ms(started))
            continue

        status = result.status
        if status == STATUS_ERROR:
            summary.sources_failed += 1
        summary.scrape_errors += len(result.errors)
        records.extend(result.records)

        logger.info(
            "[pipeline] stage=scrape source=%s status=%s records=%d errors=%d",
            result.source, status, len(result.records), len(result.errors),
        )
        _audit(
            audit,
            summary.run_id,
            result.source,
            status,
            count_found=len(result.records),
            error_text=_error_text(result.errors),
            duration_ms=result.duration_ms,
        )

    summary.scraped = len(records)
    return records


def _fetch_forecast(weather) -> List[DayWeather]:
    if weather is None:
        return []
    try:
        return list(weather.forecast())
    except Exception as e:
        logger.warning("[pipeline] weather unavailable, scoring without it: %s: %s", type(e).__name__, e)
        return []


def _score(records, forecast: Sequence[DayWeather], summary: RunSummary) -> List[ScoredRecord]:
    scored: List[ScoredRecord] = []
    for rec in records:
        try:
            day = weather_for_date(forecast, rec.start_datetime)
            scored.append(score_for_all_profiles(rec, day))
        except Exception as e:
            summary.scoring_errors += 1
            logger.error(
                "[pipeline] SCORING_ERROR external_id=%s | %s: %s",
                rec.external_id, type(e).__name__, e,
            )
    summary.scored = len(scored)
    return scored


def _persist(records: Sequence[ScoredRecord], store: EventStore, summary: RunSummary) -> List[str]:
    errors: List[str] = []
    for rec in records:
        try:
            store.upsert(rec)
            summary.upserted += 1
        except Exception as e:
            summary.upsert_errors += 1
            msg = f"{rec.external_id}: {type(e).__name__}: {e}"
            errors.append(msg)
            logger.error("[pipeline] UPSERT_ERROR source=%s | %s", rec.source, msg)
    return errors


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------

def run_pipeline(
    *,
    scrapers: Sequence[BaseScraper],
    resolver: SpatialResolver,
    weather: Optional[WeatherService],
    store: EventStore,
    audit: AuditSink,
    threshold: float = config.DEDUPE_THRESHOLD,
    max_distance_km: float = config.MAX_DISTANCE_KM,
    delay_s: float = config.SCRAPER_DELAY_S,
    retention_days: int = config.RETENTION_DAYS,
    now: Optional[datetime] = None,
    sleep: Callable[[float], None] = time.sleep,
    run_id: Optional[str] = None,
) -> RunSummary:
    run_started = time.monotonic()
    now = now or datetime.now(timezone.utc)
    summary = RunSummary(run_id=run_id or str(uuid.uuid4()), started_at=now)
    logger.info("[pipeline] start run_id=%s scrapers=%d", summary.run_id, len(scrapers))

    try:
        # 1) scrape
        raw = _scrape(scrapers, summary, audit, delay_s=delay_s, sleep=sleep)

        # 2) dedupe
        started = time.monotonic()
        unique = deduplicate(raw, threshold)
        summary.deduplicated = len(unique)
        logger.info("[pipeline] stage=dedupe in=%d out=%d", len(raw), len(unique))
        _audit(audit, summary.run_id, "dedupe", STATUS_SUCCESS, count_found=len(unique), duration_ms=_elapsed_ms(started))

        # 3) spatial filter
        started = time.monotonic()
        spatial = filter_by_location(unique, resolver, max_distance_km=max_distance_km)
        summary.geo_kept = len(spatial.records)
        summary.geo_unresolved = spatial.unresolved
        summary.dropped_no_location = spatial.dropped_no_location
        summary.dropped_out_of_radius = spatial.dropped_out_of_radius
        logger.info(
            "[pipeline] stage=geocode in=%d kept=%d resolved=%d unresolved=%d"
            " dropped_no_location=%d dropped_out_of_radius=%d",
            len(unique), len(spatial.records), spatial.resolved, spatial.unresolved,
            spatial.dropped_no_location, spatial.dropped_out_of_radius,
        )
        _audit(
            audit, summary.run_id, "geocode", STATUS_SUCCESS,
            count_found=len(spatial.records), duration_ms=_elapsed_ms(started),
        )

        # 4) score
        started = time.monotonic()
        forecast = _fetch_forecast(weather)
        summary.forecast_days = len(forecast)
        scored = _score(spatial.records, forecast, summary)
        logger.info(
            "[pipeline] stage=scoring in=%d scored=%d errors=%d forecast_days=%d",
            len(spatial.records), len(scored), summary.scoring_errors, len(forecast),
        )
        _audit(
            audit, summary.run_id, "scoring",
            _stage_status(summary.scoring_errors, len(scored)),
            count_found=len(scored),
            error_text=f"{summary.scoring_errors} records failed to score" if summary.scoring_errors else None,
            duration_ms=_elapsed_ms(started),
        )
        summary.records = scored

        # 5) persist
        started = time.monotonic()
        upsert_errors = _persist(scored, store, summary)
        logger.info("[pipeline] stage=storage upserted=%d errors=%d", summary.upserted, summary.upsert_errors)
        _audit(
            audit, summary.run_id, "storage",
            _stage_status(summary.upsert_errors, summary.upserted),
            count_found=summary.upserted,
            error_text=_error_text(upsert_errors),
            duration_ms=_elapsed_ms(started),
        )

        # 6) prune
        started = time.monotonic()
        cutoff = now - timedelta(days=retention_days)
        try:
            summary.cleaned = store.delete_older_than(cutoff)
            logger.info("[pipeline] stage=cleanup cutoff=%s deleted=%d", cutoff.isoformat(), summary.cleaned)
            _audit(
                audit, summary.run_id, "cleanup", STATUS_SUCCESS,
                count_found=summary.cleaned, duration_ms=_elapsed_ms(started),
            )
        except Exception as e:
            summary.cleanup_failed = True
            msg = f"{type(e).__name__}: {e}"
            logger.error("[pipeline] CLEANUP_ERROR | %s", msg)
            _audit(audit, summary.run_id, "cleanup", STATUS_ERROR, error_text=msg, duration_ms=_elapsed_ms(started))

    except Exception as e:
        summary.fatal = f"{type(e).__name__}: {e}"
        logger.exception("[pipeline] FATAL run_id=%s", summary.run_id)
        _audit(audit, summary.run_id, "workflow", STATUS_ERROR, error_text=summary.fatal)

    summary.finished_at = datetime.now(timezone.utc)
    summary.duration_ms = _elapsed_ms(run_started)
    print(summary.summary_line())
    return summary


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

@dataclass
class PipelineDeps:
    """Long-lived collaborators; the geocode and weather caches live in here."""
    resolver: SpatialResolver
    weather: Optional[WeatherService]
    store: EventStore
    audit: AuditSink


def default_deps(*, write: bool) -> PipelineDeps:
    """Supabase-backed store and audit when `write`, in-memory otherwise."""
    resolver = SpatialResolver(NominatimGeocoder())
    weather = WeatherService()
    if write:
        client = get_supabase()
        return PipelineDeps(
            resolver=resolver,
            weather=weather,
            store=SupabaseEventStore(client),
            audit=SupabaseScrapeLog(client),
        )
    return PipelineDeps(
        resolver=resolver,
        weather=weather,
        store=InMemoryEventStore(),
        audit=MemoryScrapeLog(echo=True),
    )


def run_configured(source: Optional[str], run_id: str, *, deps: PipelineDeps) -> RunSummary:
    """Configured scrapers (or just `source`) against `deps`."""
    scrapers = get_scrapers(source)
    return run_pipeline(
        scrapers=scrapers,
        resolver=deps.resolver,
        weather=deps.weather,
        store=deps.store,
        audit=deps.audit,
        run_id=run_id,
    )


def build_coordinator(deps: PipelineDeps, *, lock_path: Optional[str] = None) -> RunCoordinator:
    """
    Coordinator whose runs hold the cross-process lock file for their
    whole duration, so cron, CLI and in-process triggers never overlap.
    """
    path = lock_path or config.RUN_LOCK_PATH

    def runner(source: Optional[str], run_id: str) -> RunSummary:
        with run_lock(path, run_id=run_id):
            return run_configured(source, run_id, deps=deps)

    return RunCoordinator(runner, available_sources=available_sources)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Scrape, dedupe, geofilter, score and store family events")
    parser.add_argument("--source", default=None, help="Run a single source by name (default: all)")
    parser.add_argument(
        "--write",
        action="store_true",
        help="Persist to Supabase (default: dry run with in-memory store)",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    coordinator = build_coordinator(default_deps(write=args.write))
    try:
        rec = coordinator.run_blocking(args.source)
    except UnknownSourceError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    except RunInProgressError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    if rec.status != STATUS_FINISHED:
        print(f"ERROR: run_id={rec.run_id} {rec.error}", file=sys.stderr)
        return 1

    if not args.write:
        print(f"DRY RUN: {len(rec.summary.records)} scored records not persisted. Use --write to apply.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
