from __future__ import annotations

import logging
from typing import List, Optional

from .. import config
from ..errors import UnknownSourceError
from .base import BaseScraper
from .jsonld import JsonLdEventScraper
from .types import SourceConfig

logger = logging.getLogger(__name__)


def _hardcoded_sources() -> List[SourceConfig]:
    return [
        SourceConfig(name="goout.net", url="https://goout.net/cs/praha/akce"),
        SourceConfig(name="kudyznudy.cz", url="https://www.kudyznudy.cz/kalendar-akci/akce-pro-deti/hlavni-mesto-praha"),
        SourceConfig(
            name="kudyznudy.cz-stredocesky",
            url="https://www.kudyznudy.cz/kalendar-akci/akce-pro-deti/stredocesky-kraj",
        ),
        SourceConfig(name="kdykde.cz", url="https://www.kdykde.cz/calendar/zanr/deti"),
        SourceConfig(name="praguest.com", url="https://www.praguest.com/en/kid-s-events"),
        SourceConfig(name="skvelecesko.cz", url="https://www.skvelecesko.cz/akce"),
        SourceConfig(name="ententyky.cz", url="https://www.ententyky.cz/akce-1/"),
        SourceConfig(name="vylety-zabava.cz", url="https://www.vylety-zabava.cz/akce-pro-deti/praha"),
    ]


def parse_sources_env(raw: str) -> List[SourceConfig]:
    """
    "name=url,name=url" -> SourceConfigs. Malformed entries are logged and
    skipped.
    """
    out: List[SourceConfig] = []
    for chunk in (raw or "").split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        name, sep, url = chunk.partition("=")
        name, url = name.strip(), url.strip()
        if not sep or not name or not url:
            logger.warning("[sources] ignoring malformed entry %r", chunk)
            continue
        out.append(SourceConfig(name=name, url=url))
    return out


def load_sources() -> List[SourceConfig]:
    """FAMILY_EVENTS_SOURCES when set, otherwise the built-in list."""
    override = parse_sources_env(config.FAMILY_EVENTS_SOURCES)
    if override:
        mode, sources = "ENV", override
    else:
        mode, sources = "HARDCODED", _hardcoded_sources()

    sources = [s for s in sources if s.enabled]
    logger.info("[sources] mode=%s count=%d", mode, len(sources))
    for s in sources:
        logger.debug("[sources] - name=%s max_items=%d url=%s", s.name, s.max_items, s.url)
    return sources


def available_sources(sources: Optional[List[SourceConfig]] = None) -> List[str]:
    return [s.name for s in (sources if sources is not None else load_sources())]


def get_scrapers(source: Optional[str] = None, *, sources: Optional[List[SourceConfig]] = None) -> List[BaseScraper]:
    """
    All configured scrapers, or just the one named `source`.
    Raises UnknownSourceError for a name that isn't configured.
    """
    sources = sources if sources is not None else load_sources()
    if source is not None:
        matching = [s for s in sources if s.name == source]
        if not matching:
            raise UnknownSourceError(source, [s.name for s in sources])
        sources = matching
    return [JsonLdEventScraper(s) for s in sources]
