# family_events/db/source_health.py
"""
Per-source health and data-quality reports over public.events rows.

Pure functions: rows in, report dicts out. scripts/source_health.py does
the fetching and printing.

Health status per configured source:
  error    no events at all
  warning  events exist, but none created in the last RECENT_DAYS days
  healthy  otherwise

A merged record lists several sources ("a,b"); it counts for each of them.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Mapping, Optional, Sequence

HEALTH_HEALTHY = "healthy"
HEALTH_WARNING = "warning"
HEALTH_ERROR = "error"

RECENT_DAYS = 7


def _parse_ts(v: Any) -> Optional[datetime]:
    if isinstance(v, datetime):
        dt = v
    elif isinstance(v, str) and v.strip():
        s = v.strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _row_sources(row: Mapping[str, Any]) -> list[str]:
    return [s.strip() for s in str(row.get("source") or "").split(",") if s.strip()]


def _rows_by_source(source_names: Sequence[str], rows: Iterable[Mapping[str, Any]]) -> dict[str, list[Mapping[str, Any]]]:
    out: dict[str, list[Mapping[str, Any]]] = {name: [] for name in source_names}
    for row in rows:
        for s in _row_sources(row):
            if s in out:
                out[s].append(row)
    return out


def compute_source_health(
    source_names: Sequence[str],
    event_rows: Iterable[Mapping[str, Any]],
    *,
    now: Optional[datetime] = None,
    last_log_at: Optional[datetime] = None,
) -> dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    since = now - timedelta(days=RECENT_DAYS)
    grouped = _rows_by_source(source_names, event_rows)

    sources: list[dict[str, Any]] = []
    for name in source_names:
        rows = grouped[name]
        total = len(rows)
        recent = 0
        for r in rows:
            created = _parse_ts(r.get("created_at"))
            if created is not None and created >= since:
                recent += 1

        if total == 0:
            status = HEALTH_ERROR
        elif recent == 0:
            status = HEALTH_WARNING
        else:
            status = HEALTH_HEALTHY

        sources.append(
            {
                "source": name,
                "status": status,
                "total_events": total,
                "recent_events": recent,
                "last_active": last_log_at,
            }
        )

    return {
        "last_scrape": last_log_at,
        "total_sources": len(source_names),
        "healthy": sum(1 for s in sources if s["status"] == HEALTH_HEALTHY),
        "warning": sum(1 for s in sources if s["status"] == HEALTH_WARNING),
        "error": sum(1 for s in sources if s["status"] == HEALTH_ERROR),
        "sources": sources,
    }


def _pct(part: int, whole: int) -> int:
    return int(round(part * 100 / whole)) if whole else 0


def _avg(values: list[Any]) -> int:
    nums = [v for v in values if isinstance(v, (int, float))]
    return int(round(sum(nums) / len(nums))) if nums else 0


def compute_quality_stats(
    source_names: Sequence[str],
    event_rows: Iterable[Mapping[str, Any]],
) -> list[dict[str, Any]]:
    """
    Average scores per profile and field coverage per source, most events
    first. data_completeness averages the image/location/price coverage.
    """
    grouped = _rows_by_source(source_names, event_rows)

    stats: list[dict[str, Any]] = []
    for name in source_names:
        rows = grouped[name]
        total = len(rows)

        with_image = sum(1 for r in rows if r.get("image_url"))
        with_location = sum(1 for r in rows if r.get("location_name"))
        with_price = sum(
            1 for r in rows
            if any(r.get(k) is not None for k in ("adult_price", "child_price", "family_price"))
        )

        stats.append(
            {
                "source": name,
                "total_events": total,
                "avg_scores": {
                    "infant": _avg([r.get("score_infant") for r in rows]),
                    "child": _avg([r.get("score_child") for r in rows]),
                    "family": _avg([r.get("score_family") for r in rows]),
                },
                "data_completeness": _pct(with_image + with_location + with_price, total * 3),
                "has_image": _pct(with_image, total),
                "has_location": _pct(with_location, total),
                "has_price": _pct(with_price, total),
            }
        )

    stats.sort(key=lambda s: s["total_events"], reverse=True)
    return stats
