#!/usr/bin/env python3
# scripts/source_health.py
"""
Print per-source health and data-quality reports from Supabase.

Read-only.

Usage:
  python -m scripts.source_health
  python -m scripts.source_health --json
"""
from __future__ import annotations

import argparse
import json
from datetime import datetime, timezone
from typing import Any, Optional

from family_events.db.scrape_log import SCRAPE_LOG_TABLE
from family_events.db.source_health import compute_quality_stats, compute_source_health
from family_events.sources.registry import available_sources
from family_events.storage import SupabaseEventStore, execute_with_retry, get_supabase

EVENT_COLUMNS = (
    "external_id,source,created_at,image_url,location_name,"
    "adult_price,child_price,family_price,score_infant,score_child,score_family"
)


def fetch_last_log_at(supabase: Any) -> Optional[datetime]:
    resp = execute_with_retry(
        supabase.table(SCRAPE_LOG_TABLE)
        .select("created_at")
        .order("created_at", desc=True)
        .limit(1)
    )
    rows = resp.data or []
    if not rows:
        return None
    raw = str(rows[0]["created_at"])
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    return datetime.fromisoformat(raw)


def build_report(supabase: Any, *, now: Optional[datetime] = None) -> dict[str, Any]:
    names = available_sources()
    rows = list(SupabaseEventStore(supabase).iter_rows(columns=EVENT_COLUMNS))
    return {
        "health": compute_source_health(
            names,
            rows,
            now=now or datetime.now(timezone.utc),
            last_log_at=fetch_last_log_at(supabase),
        ),
        "quality": compute_quality_stats(names, rows),
    }


def _print_report(report: dict[str, Any]) -> None:
    health = report["health"]
    print(
        f"[health] sources={health['total_sources']} healthy={health['healthy']}"
        f" warning={health['warning']} error={health['error']}"
        f" last_scrape={health['last_scrape']}"
    )
    for s in health["sources"]:
        print(f"  {s['status']:<8} {s['source']:<28} total={s['total_events']} recent={s['recent_events']}")

    print("\n[quality]")
    for q in report["quality"]:
        scores = q["avg_scores"]
        print(
            f"  {q['source']:<28} events={q['total_events']}"
            f" infant={scores['infant']} child={scores['child']} family={scores['family']}"
            f" complete={q['data_completeness']}%"
            f" image={q['has_image']}% location={q['has_location']}% price={q['has_price']}%"
        )


def main() -> int:
    parser = argparse.ArgumentParser(description="Source health and data-quality report.")
    parser.add_argument("--json", action="store_true", help="Print the raw report as JSON.")
    args = parser.parse_args()

    report = build_report(get_supabase())
    if args.json:
        print(json.dumps(report, indent=2, default=str))
    else:
        _print_report(report)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
