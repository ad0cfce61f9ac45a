# family_events/db/scrape_log.py
"""
Append-only audit trail: one public.scrape_log row per stage per run.

Pure observability. A failing audit write is logged and swallowed; it must
never change what the pipeline does.

Columns: run_id, source, status, count_found, error_text, duration_ms, created_at
  source: scraper name, or a stage name ("dedupe", "geocode", "scoring",
          "storage", "cleanup", "workflow")
  status: "success" | "partial" | "error"
"""
from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from supabase import Client

logger = logging.getLogger(__name__)

SCRAPE_LOG_TABLE = "scrape_log"

STATUS_SUCCESS = "success"
STATUS_PARTIAL = "partial"
STATUS_ERROR = "error"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ScrapeLogEntry:
    source: str
    status: str
    count_found: int = 0
    error_text: Optional[str] = None
    duration_ms: Optional[int] = None
    run_id: Optional[str] = None
    created_at: datetime = field(default_factory=_utc_now)

    def to_row(self) -> dict[str, Any]:
        row = asdict(self)
        row["created_at"] = self.created_at.replace(microsecond=0).isoformat()
        return row


class AuditSink(Protocol):
    def log(self, entry: ScrapeLogEntry) -> None:
        ...


class SupabaseScrapeLog:
    def __init__(self, client: Client, *, table: str = SCRAPE_LOG_TABLE) -> None:
        self.client = client
        self.table = table

    def log(self, entry: ScrapeLogEntry) -> None:
        try:
            self.client.table(self.table).insert(entry.to_row()).execute()
        except Exception as e:
            logger.error(
                "[scrape_log] insert FAILED (non-fatal) source=%s status=%s: %s: %s",
                entry.source, entry.status, type(e).__name__, e,
            )


class MemoryScrapeLog:
    """Keeps entries in memory and echoes them; used for dry runs and tests."""

    def __init__(self, *, echo: bool = False) -> None:
        self._lock = threading.Lock()
        self.entries: list[ScrapeLogEntry] = []
        self.echo = echo

    def log(self, entry: ScrapeLogEntry) -> None:
        with self._lock:
            self.entries.append(entry)
        if self.echo:
            print(
                f"[scrape_log] source={entry.source} status={entry.status}"
                f" count_found={entry.count_found} duration_ms={entry.duration_ms}"
                f" error={entry.error_text!r}"
            )

    def by_source(self, source: str) -> list[ScrapeLogEntry]:
        with self._lock:
            return [e for e in self.entries if e.source == source]
