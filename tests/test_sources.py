# tests/test_sources.py
"""
Scraper contract, JSON-LD extraction and the source registry. No network:
the JSON-LD scraper gets a fake fetcher.
"""
from __future__ import annotations

import json

import pytest

from family_events import config
from family_events.errors import UnknownSourceError
from family_events.sources.base import BaseScraper, FunctionScraper
from family_events.sources.http import HttpResult
from family_events.sources.jsonld import (
    JsonLdEventScraper,
    event_to_payload,
    extract_events,
    is_event_type,
    map_age_range,
    map_duration,
    map_offers,
)
from family_events.sources.registry import get_scrapers, load_sources, parse_sources_env
from family_events.sources.types import SourceConfig

PAGE_URL = "https://www.kdykde.cz/calendar/zanr/deti"

EVENT_THEATER = {
    "@context": "https://schema.org",
    "@type": "TheaterEvent",
    "@id": "https://www.kdykde.cz/akce/123",
    "name": "Loutková pohádka O Smolíčkovi",
    "description": "<p>Klasická pohádka pro nejmenší diváky.</p>",
    "startDate": "2026-06-13T10:00:00+02:00",
    "endDate": "2026-06-13T10:50:00+02:00",
    "typicalAgeRange": "2-6",
    "location": {
        "@type": "Place",
        "name": "Divadlo Minor",
        "address": {
            "@type": "PostalAddress",
            "streetAddress": "Vodičkova 6",
            "postalCode": "110 00",
            "addressLocality": "Praha 1",
        },
    },
    "offers": [
        {"@type": "Offer", "name": "Dospělí", "price": "180"},
        {"@type": "Offer", "name": "Děti", "price": "120"},
        {"@type": "Offer", "name": "Rodinné vstupné", "price": "450"},
    ],
    "image": ["/img/smolicek.jpg"],
    "url": "/akce/123",
}

EVENT_PARK = {
    "@type": "Event",
    "name": "Piknik v Stromovce",
    "startDate": "2026-06-14T14:00:00+02:00",
    "location": {"@type": "Park", "name": "Stromovka", "address": "Královská obora, Praha 7"},
    "offers": {"@type": "Offer", "price": "0"},
    "duration": "PT2H30M",
}

EVENT_ONLINE = {
    "@type": "Event",
    "name": "Online čtení pohádek",
    "startDate": "2026-06-15T18:00:00+02:00",
    "eventAttendanceMode": "https://schema.org/OnlineEventAttendanceMode",
    "location": {"@type": "VirtualLocation", "url": "https://zoom.example"},
}

EVENT_NO_TITLE = {"@type": "Event", "startDate": "2026-06-16T10:00:00+02:00", "location": "Praha"}


def _html(*blocks) -> str:
    scripts = "\n".join(
        f'<script type="application/ld+json">{json.dumps(b, ensure_ascii=False)}</script>' for b in blocks
    )
    return f"<html><head>{scripts}</head><body></body></html>"


def _fetcher(html: str):
    def fetch(url: str) -> HttpResult:
        return HttpResult(url=url, status_code=200, text=html)
    return fetch


# ---------------------------------------------------------------------------
# Scraper contract
# ---------------------------------------------------------------------------

class ExplodingScraper(BaseScraper):
    name = "broken.cz"

    def fetch(self):
        raise ConnectionError("site down")


class TestBaseScraper:
    def test_fetch_error_becomes_error_result(self):
        result = ExplodingScraper().run()
        assert result.source == "broken.cz"
        assert result.records == []
        assert result.errors == ["ConnectionError: site down"]
        assert result.status == "error"

    def test_invalid_payloads_are_collected_not_raised(self):
        scraper = FunctionScraper(
            "goout.net",
            lambda: [
                {"external_id": "a", "title": "Dobrá akce", "start_datetime": "2026-06-13T10:00:00+02:00"},
                {"external_id": "b", "title": "", "start_datetime": "2026-06-13T10:00:00+02:00"},
            ],
        )
        result = scraper.run()
        assert [r.external_id for r in result.records] == ["a"]
        assert len(result.errors) == 1
        assert result.status == "partial"
        assert result.duration_ms >= 0

    def test_clean_run_is_success(self):
        result = FunctionScraper("goout.net", lambda: []).run()
        assert result.status == "success"


# ---------------------------------------------------------------------------
# JSON-LD
# ---------------------------------------------------------------------------

class TestJsonLdHelpers:
    def test_is_event_type(self):
        assert is_event_type("Event")
        assert is_event_type("ChildrensEvent")
        assert is_event_type(["Thing", "TheaterEvent"])
        assert is_event_type("Festival")
        assert not is_event_type("Place")
        assert not is_event_type(None)

    def test_extract_events_from_graph_and_lists(self):
        html = _html(
            {"@context": "https://schema.org", "@graph": [{"@type": "WebPage"}, EVENT_THEATER]},
            [EVENT_PARK, {"@type": "Organization", "name": "x"}],
        )
        names = [e["name"] for e in extract_events(html)]
        assert names == ["Loutková pohádka O Smolíčkovi", "Piknik v Stromovce"]

    def test_broken_json_is_skipped(self):
        html = '<script type="application/ld+json">{not json</script>' + _html(EVENT_PARK)
        assert len(extract_events(html)) == 1

    @pytest.mark.parametrize(
        "value,expected",
        [("2-6", (2, 6)), ("3–10", (3, 10)), ("6+", (6, None)), ("0 až 3", (0, 3)), ("pro všechny", (None, None)), (None, (None, None))],
    )
    def test_age_range(self, value, expected):
        assert map_age_range(value) == expected

    def test_duration_iso_and_derived(self):
        assert map_duration(EVENT_PARK) == 150
        assert map_duration(EVENT_THEATER) == 50
        assert map_duration({"startDate": "2026-06-13T10:00", "endDate": "2026-06-20T10:00"}) is None

    def test_offers_bucketed_by_name(self):
        assert map_offers(EVENT_THEATER) == {"adult_price": 180.0, "child_price": 120.0, "family_price": 450.0}
        assert map_offers(EVENT_PARK) == {"adult_price": 0.0}
        assert map_offers({}) == {}

    def test_event_to_payload(self):
        p = event_to_payload(EVENT_THEATER, source="kdykde.cz", page_url=PAGE_URL)
        assert p["external_id"].startswith("kdykde.cz:")
        assert p["title"] == "Loutková pohádka O Smolíčkovi"
        assert p["description"] == "Klasická pohádka pro nejmenší diváky."
        assert p["location_name"] == "Divadlo Minor"
        assert p["address"] == "Vodičkova 6, 110 00 Praha 1"
        assert p["category"] == "theater"
        assert (p["age_min"], p["age_max"]) == (2, 6)
        assert p["image_url"] == "https://www.kdykde.cz/img/smolicek.jpg"
        assert p["booking_url"] == "https://www.kdykde.cz/akce/123"
        assert p["is_outdoor"] is None

    def test_park_is_outdoor(self):
        p = event_to_payload(EVENT_PARK, source="kdykde.cz", page_url=PAGE_URL)
        assert p["is_outdoor"] is True
        assert p["address"] == "Královská obora, Praha 7"
        assert p["category"] is None

    def test_external_id_is_stable(self):
        a = event_to_payload(EVENT_PARK, source="kdykde.cz", page_url=PAGE_URL)["external_id"]
        b = event_to_payload(dict(EVENT_PARK), source="kdykde.cz", page_url=PAGE_URL)["external_id"]
        assert a == b


class TestJsonLdEventScraper:
    def test_run_end_to_end(self):
        html = _html(EVENT_THEATER, EVENT_PARK, EVENT_ONLINE, EVENT_NO_TITLE)
        scraper = JsonLdEventScraper(SourceConfig(name="kdykde.cz", url=PAGE_URL), fetcher=_fetcher(html))

        result = scraper.run()

        assert [r.title for r in result.records] == ["Loutková pohádka O Smolíčkovi", "Piknik v Stromovce"]
        assert len(result.errors) == 1  # EVENT_NO_TITLE
        assert result.status == "partial"
        theater = result.records[0]
        assert theater.child_price == 120.0
        assert theater.duration_minutes == 50
        assert theater.source == "kdykde.cz"

    def test_max_items(self):
        html = _html(EVENT_THEATER, EVENT_PARK)
        scraper = JsonLdEventScraper(
            SourceConfig(name="kdykde.cz", url=PAGE_URL, max_items=1),
            fetcher=_fetcher(html),
        )
        assert len(scraper.run().records) == 1

    def test_http_error_is_a_source_error(self):
        def failing(url):
            raise ConnectionError("timeout")

        result = JsonLdEventScraper(SourceConfig(name="kdykde.cz", url=PAGE_URL), fetcher=failing).run()
        assert result.status == "error"


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class TestRegistry:
    def test_parse_sources_env(self):
        sources = parse_sources_env("a.cz=https://a.cz/akce, broken ,b.cz=https://b.cz")
        assert [(s.name, s.url) for s in sources] == [("a.cz", "https://a.cz/akce"), ("b.cz", "https://b.cz")]

    def test_hardcoded_fallback(self, monkeypatch):
        monkeypatch.setattr(config, "FAMILY_EVENTS_SOURCES", "")
        names = [s.name for s in load_sources()]
        assert "goout.net" in names
        assert "kdykde.cz" in names

    def test_env_override(self, monkeypatch):
        monkeypatch.setattr(config, "FAMILY_EVENTS_SOURCES", "only.cz=https://only.cz")
        assert [s.name for s in load_sources()] == ["only.cz"]

    def test_get_scrapers_single_source(self):
        sources = [SourceConfig(name="a.cz", url="https://a.cz"), SourceConfig(name="b.cz", url="https://b.cz")]
        scrapers = get_scrapers("b.cz", sources=sources)
        assert [s.name for s in scrapers] == ["b.cz"]

    def test_unknown_source_lists_available(self):
        sources = [SourceConfig(name="a.cz", url="https://a.cz"), SourceConfig(name="b.cz", url="https://b.cz")]
        with pytest.raises(UnknownSourceError) as exc:
            get_scrapers("nope.cz", sources=sources)
        assert str(exc.value) == "Unknown source: nope.cz. Available sources: a.cz, b.cz"
        assert exc.value.available == ["a.cz", "b.cz"]
