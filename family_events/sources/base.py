from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, List

from ..errors import RecordValidationError
from .ingest import Payload, coerce_raw_record
from .types import ScraperResult

logger = logging.getLogger(__name__)


class BaseScraper(ABC):
    """
    One event source.

    Subclasses implement fetch(); the pipeline only ever calls run(), which
    never raises: fetch failures and rejected payloads end up in
    ScraperResult.errors.
    """

    name: str = "unnamed"

    @abstractmethod
    def fetch(self) -> List[Payload]:
        """Return raw payloads (mappings or ready RawRecords)."""

    def run(self) -> ScraperResult:
        started = time.monotonic()
        result = ScraperResult(source=self.name)

        try:
            payloads = self.fetch()
        except Exception as e:
            msg = f"{type(e).__name__}: {e}"
            logger.warning("[scraper] source=%s fetch_failed %s", self.name, msg)
            result.errors.append(msg)
            payloads = []

        for payload in payloads:
            try:
                result.records.append(coerce_raw_record(payload, source=self.name))
            except RecordValidationError as e:
                result.errors.append(str(e))

        result.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "[scraper] source=%s records=%d errors=%d duration_ms=%d",
            self.name, len(result.records), len(result.errors), result.duration_ms,
        )
        return result


class FunctionScraper(BaseScraper):
    """Wraps a plain callable returning payloads."""

    def __init__(self, name: str, fn: Callable[[], List[Payload]]) -> None:
        self.name = name
        self._fn = fn

    def fetch(self) -> List[Payload]:
        return list(self._fn())
