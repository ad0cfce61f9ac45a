from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from ..models import RawRecord


@dataclass(frozen=True)
class SourceConfig:
    name: str
    url: str
    max_items: int = 100
    enabled: bool = True


@dataclass
class ScraperResult:
    """
    Outcome of one scraper invocation.

    `records` are already validated; `errors` holds one message per failed
    fetch or rejected payload. Both may be non-empty at once.
    """
    source: str
    records: List[RawRecord] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def status(self) -> str:
        if not self.errors:
            return "success"
        if self.records:
            return "partial"
        return "error"
