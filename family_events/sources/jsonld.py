"""
Generic schema.org Event scraper.

Many Czech listing sites embed their programme as JSON-LD. This scraper
downloads one listing page, collects every node whose @type is Event or a
subtype ("TheaterEvent", "ChildrensEvent", ...), and maps it to a payload
for sources.ingest. Dates, prices and validation are left to ingest.

Handles:
- single Event object, arrays of them, and @graph containers
- @type as string or list
- location as Place dict, list of Places, or plain string
- offers as Offer, AggregateOffer, or list of Offers
Online-only events are skipped.
"""
from __future__ import annotations

import hashlib
import json
import logging
import re
from typing import Any, Callable, Iterator, List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from .base import BaseScraper
from .http import HttpResult, http_get
from .ingest import parse_datetime, parse_price
from .types import SourceConfig

logger = logging.getLogger(__name__)

OUTDOOR_PLACE_TYPES = frozenset({"Park", "Playground", "Zoo", "Beach", "Campground", "TouristAttraction"})

CHILD_OFFER_WORDS = ("dět", "dít", "child", "kid", "junior")
FAMILY_OFFER_WORDS = ("rodin", "family")

MAX_DERIVED_DURATION_MIN = 12 * 60

_AGE_RANGE_RE = re.compile(r"(\d+)\s*(?:-|–|až)\s*(\d+)")
_AGE_PLUS_RE = re.compile(r"(\d+)\s*\+")
_ISO_DURATION_RE = re.compile(r"^P(?:T(?:(\d+)H)?(?:(\d+)M)?)$")


# ---------------------------------------------------------------------------
# JSON-LD traversal
# ---------------------------------------------------------------------------

def iter_jsonld_nodes(data: Any) -> Iterator[dict]:
    if isinstance(data, dict):
        if "@graph" in data and isinstance(data["@graph"], list):
            for n in data["@graph"]:
                yield from iter_jsonld_nodes(n)
        yield data
    elif isinstance(data, list):
        for x in data:
            yield from iter_jsonld_nodes(x)


def is_event_type(t: object) -> bool:
    """Accept exact "Event" and any Schema.org subtype ending with "Event"."""
    if isinstance(t, str):
        return t == "Event" or t.endswith("Event") or t == "Festival"
    if isinstance(t, list):
        return any(is_event_type(x) for x in t)
    return False


def extract_events(html: str) -> List[dict]:
    soup = BeautifulSoup(html, "html.parser")
    events: List[dict] = []
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        try:
            data = json.loads(script.get_text() or "")
        except json.JSONDecodeError:
            continue
        for node in iter_jsonld_nodes(data):
            if is_event_type(node.get("@type")):
                events.append(node)
    return events


# ---------------------------------------------------------------------------
# Field mapping
# ---------------------------------------------------------------------------

def _text(v: Any) -> Optional[str]:
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return None


def _plain_text(v: Any) -> Optional[str]:
    s = _text(v)
    if s and "<" in s:
        s = BeautifulSoup(s, "html.parser").get_text(" ", strip=True) or None
    return s


def _first_dict(v: Any) -> Optional[dict]:
    if isinstance(v, dict):
        return v
    if isinstance(v, list):
        return next((x for x in v if isinstance(x, dict)), None)
    return None


def _format_address(addr: Any) -> Optional[str]:
    if isinstance(addr, str):
        return _text(addr)
    if not isinstance(addr, dict):
        return None

    parts: list[str] = []
    street = _text(addr.get("streetAddress"))
    if street:
        parts.append(street)
    pc_city = " ".join(x for x in [_text(addr.get("postalCode")), _text(addr.get("addressLocality"))] if x)
    if pc_city:
        parts.append(pc_city)
    return ", ".join(parts) or None


def is_online_event(event: dict) -> bool:
    if "OnlineEventAttendanceMode" in str(event.get("eventAttendanceMode") or ""):
        return True
    loc = event.get("location")
    locs = loc if isinstance(loc, list) else [loc]
    places = [x for x in locs if isinstance(x, dict)]
    return bool(places) and all(p.get("@type") == "VirtualLocation" for p in places)


def map_location(event: dict) -> tuple[Optional[str], Optional[str], Optional[bool]]:
    """(location_name, address, is_outdoor)"""
    loc = event.get("location")
    if isinstance(loc, str):
        return _text(loc), None, None

    place = _first_dict(loc)
    if place is None:
        return None, None, None

    outdoor = True if place.get("@type") in OUTDOOR_PLACE_TYPES else None
    return _text(place.get("name")), _format_address(place.get("address")), outdoor


def map_offers(event: dict) -> dict[str, Optional[float]]:
    """
    Sort offers into adult / child / family by their name. The cheapest
    offer per bucket wins; unnamed offers count as adult tickets.
    """
    offers = event.get("offers")
    if isinstance(offers, dict):
        offers = [offers]
    if not isinstance(offers, list):
        return {}

    buckets: dict[str, list[float]] = {"adult_price": [], "child_price": [], "family_price": []}
    for offer in offers:
        if not isinstance(offer, dict):
            continue
        price = parse_price(offer.get("price"))
        if price is None:
            price = parse_price(offer.get("lowPrice"))
        if price is None:
            continue

        label = f"{offer.get('name') or ''} {offer.get('category') or ''}".lower()
        if any(w in label for w in FAMILY_OFFER_WORDS):
            buckets["family_price"].append(price)
        elif any(w in label for w in CHILD_OFFER_WORDS):
            buckets["child_price"].append(price)
        else:
            buckets["adult_price"].append(price)

    return {k: min(v) for k, v in buckets.items() if v}


def map_age_range(v: Any) -> tuple[Optional[int], Optional[int]]:
    """schema.org typicalAgeRange: "3-10", "6+", "0–3"."""
    s = _text(v)
    if not s:
        return None, None
    m = _AGE_RANGE_RE.search(s)
    if m:
        return int(m.group(1)), int(m.group(2))
    m = _AGE_PLUS_RE.search(s)
    if m:
        return int(m.group(1)), None
    return None, None


def map_duration(event: dict) -> Optional[int]:
    """ISO 8601 duration if given, else end - start when plausible."""
    d = _text(event.get("duration"))
    if d:
        m = _ISO_DURATION_RE.match(d)
        if m and (m.group(1) or m.group(2)):
            minutes = int(m.group(1) or 0) * 60 + int(m.group(2) or 0)
            return minutes or None

    start = parse_datetime(event.get("startDate"))
    end = parse_datetime(event.get("endDate"))
    if start is None or end is None:
        return None
    minutes = int((end - start).total_seconds() // 60)
    if 0 < minutes <= MAX_DERIVED_DURATION_MIN:
        return minutes
    return None


def map_category(event: dict) -> Optional[str]:
    """Subtype name without the "Event" suffix: TheaterEvent -> "theater"."""
    t = event.get("@type")
    types = t if isinstance(t, list) else [t]
    for x in types:
        if isinstance(x, str) and x != "Event" and is_event_type(x):
            name = x[: -len("Event")] if x.endswith("Event") else x
            return name.lower() or None
    return None


def map_image(v: Any) -> Optional[str]:
    if isinstance(v, list):
        v = v[0] if v else None
    if isinstance(v, dict):
        v = v.get("url")
    return _text(v)


def make_external_id(source: str, event: dict) -> str:
    key = _text(event.get("@id")) or _text(event.get("url"))
    if not key:
        key = "|".join(str(event.get(k) or "") for k in ("name", "startDate"))
        key += "|" + str(map_location(event)[0] or "")
    digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:16]
    return f"{source}:{digest}"


def event_to_payload(event: dict, *, source: str, page_url: str) -> dict[str, Any]:
    location_name, address, is_outdoor = map_location(event)
    age_min, age_max = map_age_range(event.get("typicalAgeRange"))

    url = _text(event.get("url"))
    image = map_image(event.get("image"))

    payload: dict[str, Any] = {
        "external_id": make_external_id(source, event),
        "source": source,
        "title": _plain_text(event.get("name")),
        "description": _plain_text(event.get("description")),
        "start_datetime": event.get("startDate"),
        "end_datetime": event.get("endDate"),
        "location_name": location_name,
        "address": address,
        "category": map_category(event),
        "age_min": age_min,
        "age_max": age_max,
        "is_outdoor": is_outdoor,
        "duration_minutes": map_duration(event),
        "image_url": urljoin(page_url, image) if image else None,
        "booking_url": urljoin(page_url, url) if url else None,
    }
    payload.update(map_offers(event))
    return payload


# ---------------------------------------------------------------------------
# Scraper
# ---------------------------------------------------------------------------

class JsonLdEventScraper(BaseScraper):
    def __init__(
        self,
        config: SourceConfig,
        *,
        fetcher: Callable[[str], HttpResult] = http_get,
    ) -> None:
        self.config = config
        self.name = config.name
        self._fetcher = fetcher

    def fetch(self) -> List[dict]:
        page = self._fetcher(self.config.url)
        events = extract_events(page.text)

        payloads: List[dict] = []
        skipped_online = 0
        for event in events:
            if is_online_event(event):
                skipped_online += 1
                continue
            payloads.append(event_to_payload(event, source=self.name, page_url=page.url))
            if len(payloads) >= self.config.max_items:
                break

        logger.info(
            "[jsonld] source=%s events=%d payloads=%d skipped_online=%d",
            self.name, len(events), len(payloads), skipped_online,
        )
        return payloads
