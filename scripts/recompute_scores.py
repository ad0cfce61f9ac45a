#!/usr/bin/env python3
# scripts/recompute_scores.py
"""
Re-score every persisted event with the current scoring rules.

Safe to rerun: deterministic, and only rows whose scores actually changed
are written. Weather comes from one forecast fetch for the whole batch
(none without OPENWEATHER_API_KEY).

Usage:
  # Dry run (default): report what would change
  python -m scripts.recompute_scores

  # Live: apply updates
  python -m scripts.recompute_scores --write
"""
from __future__ import annotations

import argparse
import logging
from typing import Any, Optional, Sequence

from family_events.models import DayWeather
from family_events.scoring.engine import score_for_all_profiles
from family_events.storage import (
    EVENTS_TABLE,
    SupabaseEventStore,
    execute_with_retry,
    get_supabase,
    record_from_row,
)
from family_events.weather import WeatherService, weather_for_date

SCORE_COLUMNS = ("score_infant", "score_child", "score_family")


def recompute_all(
    supabase: Any,
    *,
    dry_run: bool = True,
    forecast: Optional[Sequence[DayWeather]] = None,
    batch_size: int = 500,
) -> dict[str, int]:
    """
    Returns: {"total": N, "changed": N, "unchanged": N, "errors": N}
    """
    counts = {"total": 0, "changed": 0, "unchanged": 0, "errors": 0}
    store = SupabaseEventStore(supabase)
    forecast = forecast or []

    for row in store.iter_rows(batch_size=batch_size):
        counts["total"] += 1
        try:
            rec = record_from_row(row)
            scored = score_for_all_profiles(rec, weather_for_date(forecast, rec.start_datetime))

            new = {c: getattr(scored, c) for c in SCORE_COLUMNS}
            old = {c: row.get(c) for c in SCORE_COLUMNS}
            if new == old:
                counts["unchanged"] += 1
                continue

            counts["changed"] += 1
            if not dry_run:
                execute_with_retry(
                    supabase.table(EVENTS_TABLE).update(new).eq("external_id", rec.external_id)
                )

            print(
                f"  {'[DRY]' if dry_run else '[UPD]'} "
                f"external_id={rec.external_id} "
                f"infant {old['score_infant']} -> {new['score_infant']} "
                f"child {old['score_child']} -> {new['score_child']} "
                f"family {old['score_family']} -> {new['score_family']}"
            )

        except Exception as e:
            counts["errors"] += 1
            print(f"  [ERR] external_id={row.get('external_id', '?')}: {e!r}")

    return counts


def main() -> int:
    parser = argparse.ArgumentParser(description="Recompute audience scores for all stored events.")
    parser.add_argument(
        "--write",
        action="store_true",
        help="Apply updates (default: dry run).",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    dry_run = not args.write
    mode = "DRY RUN" if dry_run else "LIVE"
    print(f"[recompute] mode={mode}")

    supabase = get_supabase()
    forecast = WeatherService().forecast()
    counts = recompute_all(supabase, dry_run=dry_run, forecast=forecast)

    print(f"\n[recompute] done mode={mode}")
    print(
        f"  total={counts['total']} "
        f"changed={counts['changed']} "
        f"unchanged={counts['unchanged']} "
        f"errors={counts['errors']}"
    )

    return 0 if counts["errors"] == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
