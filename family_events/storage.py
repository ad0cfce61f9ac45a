# family_events/storage.py
"""
Persistence of scored events (Supabase / PostgREST).

Table public.events, unique on external_id:
  external_id, source, title, description, start_at, end_at,
  location_name, address, latitude, longitude, distance_from_origin,
  category, age_min, age_max, adult_price, child_price, family_price,
  is_outdoor, duration_minutes, image_url, booking_url,
  score_infant, score_child, score_family, updated_at

Every run recomputes rows from scratch and upserts them by external_id.
Stores raise on failure; the pipeline decides whether that is fatal.
"""
from __future__ import annotations

import logging
import random
import threading
import time
from datetime import datetime, timezone
from typing import Any, Iterator, Mapping, Optional, Protocol

import httpx
from supabase import Client, create_client

from . import config
from .errors import ConfigError
from .localtime import to_local
from .models import GeoRecord, ScoredRecord

logger = logging.getLogger(__name__)

EVENTS_TABLE = "events"

_TRANSIENT_HTTP_ERRORS = (
    httpx.RemoteProtocolError,
    httpx.ReadTimeout,
    httpx.ConnectError,
    httpx.WriteError,
)


# -----------------------------------------------------------------------------
# Supabase client helpers
# -----------------------------------------------------------------------------

def get_supabase() -> Client:
    url = config.SUPABASE_URL
    key = config.SUPABASE_SERVICE_ROLE_KEY
    if not url or not key:
        raise ConfigError(
            "Missing SUPABASE env vars. Need SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY. "
            "Copy .env.example to .env and fill in your Supabase credentials."
        )
    return create_client(url, key)


def execute_with_retry(rb: Any, *, tries: int = 4, base_sleep: float = 0.5) -> Any:
    """
    PostgREST calls occasionally drop HTTP/2 connections under load.
    Retry .execute() with exponential backoff on transient transport errors only.
    """
    last: Optional[Exception] = None
    for attempt in range(tries):
        try:
            return rb.execute()
        except _TRANSIENT_HTTP_ERRORS as e:
            last = e
            sleep = base_sleep * (2 ** attempt) + random.random() * 0.25
            logger.warning(
                "[storage] transient http error: %s attempt=%d/%d sleep=%.2fs",
                type(e).__name__, attempt + 1, tries, sleep,
            )
            time.sleep(sleep)
    raise last  # type: ignore[misc]


# -----------------------------------------------------------------------------
# Row mapping
# -----------------------------------------------------------------------------

def _dt_iso(dt: Optional[datetime]) -> Optional[str]:
    if not dt:
        return None
    return to_local(dt).astimezone(timezone.utc).replace(microsecond=0).isoformat()


def build_events_row(rec: ScoredRecord, *, now: Optional[datetime] = None) -> dict[str, Any]:
    """Pure function (no DB calls): the row upserted into public.events."""
    now = now or datetime.now(timezone.utc)
    return {
        "external_id": rec.external_id,
        "source": rec.source,
        "title": rec.title,
        "description": rec.description,
        "start_at": _dt_iso(rec.start_datetime),
        "end_at": _dt_iso(rec.end_datetime),
        "location_name": rec.location_name,
        "address": rec.address,
        "latitude": rec.latitude,
        "longitude": rec.longitude,
        "distance_from_origin": rec.distance_from_origin,
        "category": rec.category,
        "age_min": rec.age_min,
        "age_max": rec.age_max,
        "adult_price": rec.adult_price,
        "child_price": rec.child_price,
        "family_price": rec.family_price,
        "is_outdoor": bool(rec.is_outdoor),
        "duration_minutes": rec.duration_minutes,
        "image_url": rec.image_url,
        "booking_url": rec.booking_url,
        "score_infant": rec.score_infant,
        "score_child": rec.score_child,
        "score_family": rec.score_family,
        "updated_at": _dt_iso(now),
    }


def record_from_row(row: Mapping[str, Any]) -> GeoRecord:
    """Inverse of build_events_row, minus the scores (used for rescoring)."""
    return GeoRecord(
        external_id=row["external_id"],
        source=row["source"],
        title=row["title"],
        description=row.get("description"),
        start_datetime=row["start_at"],
        end_datetime=row.get("end_at"),
        location_name=row.get("location_name"),
        address=row.get("address"),
        category=row.get("category"),
        age_min=row.get("age_min"),
        age_max=row.get("age_max"),
        adult_price=row.get("adult_price"),
        child_price=row.get("child_price"),
        family_price=row.get("family_price"),
        is_outdoor=row.get("is_outdoor"),
        duration_minutes=row.get("duration_minutes"),
        image_url=row.get("image_url"),
        booking_url=row.get("booking_url"),
        latitude=row.get("latitude"),
        longitude=row.get("longitude"),
        distance_from_origin=row.get("distance_from_origin"),
    )


# -----------------------------------------------------------------------------
# Stores
# -----------------------------------------------------------------------------

class EventStore(Protocol):
    def upsert(self, record: ScoredRecord) -> None:
        ...

    def delete_older_than(self, cutoff: datetime) -> int:
        ...


class SupabaseEventStore:
    def __init__(self, client: Optional[Client] = None, *, table: str = EVENTS_TABLE) -> None:
        self._client = client
        self.table = table

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase()
        return self._client

    def upsert(self, record: ScoredRecord) -> None:
        row = build_events_row(record)
        execute_with_retry(
            self.client.table(self.table).upsert(row, on_conflict="external_id")
        )

    def delete_older_than(self, cutoff: datetime) -> int:
        resp = execute_with_retry(
            self.client.table(self.table).delete().lt("start_at", _dt_iso(cutoff))
        )
        return len(getattr(resp, "data", None) or [])

    def iter_rows(self, *, columns: str = "*", batch_size: int = 500) -> Iterator[dict[str, Any]]:
        offset = 0
        while True:
            resp = execute_with_retry(
                self.client.table(self.table)
                .select(columns)
                .order("external_id")
                .range(offset, offset + batch_size - 1)
            )
            rows = resp.data or []
            if not rows:
                return
            yield from rows
            if len(rows) < batch_size:
                return
            offset += batch_size


class InMemoryEventStore:
    """Dry-run / test store with the same semantics as the Supabase table."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.records: dict[str, ScoredRecord] = {}

    def upsert(self, record: ScoredRecord) -> None:
        with self._lock:
            self.records[record.external_id] = record

    def delete_older_than(self, cutoff: datetime) -> int:
        cutoff_local = to_local(cutoff)
        with self._lock:
            stale = [
                k for k, r in self.records.items()
                if to_local(r.start_datetime) < cutoff_local
            ]
            for k in stale:
                del self.records[k]
        return len(stale)
