from __future__ import annotations

import logging
from dataclasses import dataclass

import requests

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; PragueFamilyEvents/1.0)"


@dataclass
class HttpResult:
    url: str
    status_code: int
    text: str


def http_get(url: str, *, timeout_s: int = 30, session: requests.Session | None = None) -> HttpResult:
    """
    Plain GET. Non-2xx responses raise requests.HTTPError so the scraper
    records them as a fetch failure.
    """
    logger.debug("[http] GET url=%s", url)
    getter = session.get if session is not None else requests.get
    r = getter(url, timeout=timeout_s, headers={"User-Agent": USER_AGENT, "Accept-Language": "cs,en;q=0.8"})
    r.raise_for_status()
    return HttpResult(url=r.url, status_code=r.status_code, text=r.text)
