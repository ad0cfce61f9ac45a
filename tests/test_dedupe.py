# tests/test_dedupe.py
"""
Cross-source deduplication:

  Part 1: composite duplicate score (signals, missing-data handling, symmetry)
  Part 2: merge policy (first record wins identity, field-by-field rules)
  Part 3: deduplicate() pass (grouping, order, idempotence)
"""
from __future__ import annotations

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from family_events.canonicalize.dedupe import (
    duplicate_score,
    deduplicate,
    find_duplicate_groups,
    is_duplicate,
    is_same_day,
    is_within_hours,
    merge_records,
    price_similarity,
)
from family_events.models import RawRecord

PRAGUE = ZoneInfo("Europe/Prague")
SAT_10 = datetime(2026, 6, 13, 10, 0, tzinfo=PRAGUE)


def _rec(**kw) -> RawRecord:
    base = {
        "external_id": "goout-1",
        "source": "goout.net",
        "title": "Koncert v Parku",
        "start_datetime": SAT_10,
    }
    base.update(kw)
    return RawRecord(**base)


# ---------------------------------------------------------------------------
# Part 1: score
# ---------------------------------------------------------------------------

class TestSignals:
    def test_same_day_uses_local_date(self):
        # 23:30 UTC on the 12th is 01:30 on the 13th in Prague (CEST)
        utc_late = datetime(2026, 6, 12, 23, 30, tzinfo=ZoneInfo("UTC"))
        assert is_same_day(utc_late, SAT_10)

    def test_within_hours_inclusive(self):
        assert is_within_hours(SAT_10, SAT_10 + timedelta(hours=2))
        assert not is_within_hours(SAT_10, SAT_10 + timedelta(hours=2, minutes=1))

    def test_price_similarity(self):
        assert price_similarity(0, 0) == 1.0
        assert price_similarity(100, 100) == 1.0
        assert price_similarity(100, 110) == pytest.approx(1 - 10 / 105)
        assert price_similarity(0, 500) == 0.0


class TestDuplicateScore:
    def test_koncert_scenario_merges_and_keeps_lower_price(self):
        a = _rec(location_name="Letná park", adult_price=100)
        b = _rec(
            external_id="kdykde-7",
            source="kdykde.cz",
            title="Koncert v parku!",
            location_name="Letná park",
            adult_price=110,
        )

        assert duplicate_score(a, b) >= 0.8
        out = deduplicate([a, b])
        assert len(out) == 1
        assert out[0].adult_price == 100
        assert out[0].external_id == "goout-1"
        assert out[0].source == "goout.net,kdykde.cz"

    def test_symmetric(self):
        a = _rec(location_name="Divadlo Minor", adult_price=150)
        b = _rec(
            external_id="x-2",
            title="Koncert na Letné",
            start_datetime=SAT_10 + timedelta(hours=5),
            address="Letenské sady, Praha 7",
            adult_price=90,
        )
        assert duplicate_score(a, b) == duplicate_score(b, a)

    def test_missing_location_and_price_are_not_penalized(self):
        a = _rec()
        b = _rec(external_id="x-2", title="Koncert v parku")
        # title 0.4 + same day 0.3 + close time 0.1 over weights 0.8
        assert duplicate_score(a, b) == pytest.approx(1.0)

    def test_location_only_on_one_side_is_ignored(self):
        a = _rec(location_name="Letná park")
        b = _rec(external_id="x-2")
        assert duplicate_score(a, b) == pytest.approx(1.0)

    def test_different_days_do_not_merge(self):
        a = _rec()
        b = _rec(external_id="x-2", start_datetime=SAT_10 + timedelta(days=1))
        # 0.4 / 0.7
        assert duplicate_score(a, b) == pytest.approx(0.4 / 0.7)
        assert not is_duplicate(a, b)

    def test_same_day_far_apart_has_no_time_bonus_weight(self):
        a = _rec()
        b = _rec(external_id="x-2", start_datetime=SAT_10 + timedelta(hours=6))
        assert duplicate_score(a, b) == pytest.approx(1.0)

    def test_location_falls_back_to_address(self):
        a = _rec(address="Letenské sady, Praha 7")
        b = _rec(external_id="x-2", address="Letenské sady, Praha 7")
        assert duplicate_score(a, b) == pytest.approx(1.0)

    def test_unrelated_titles_stay_apart(self):
        a = _rec(title="Loutkové divadlo pro nejmenší", location_name="Divadlo Minor")
        b = _rec(external_id="x-2", title="Workshop keramiky", location_name="DDM Praha 3")
        assert not is_duplicate(a, b)

    def test_threshold_is_inclusive(self):
        a = _rec()
        b = _rec(external_id="x-2", start_datetime=SAT_10 + timedelta(days=1))
        score = duplicate_score(a, b)
        assert is_duplicate(a, b, threshold=score)


# ---------------------------------------------------------------------------
# Part 2: merge
# ---------------------------------------------------------------------------

class TestMergeRecords:
    def test_first_record_keeps_identity_and_start(self):
        a = _rec()
        b = _rec(external_id="x-2", source="kdykde.cz", start_datetime=SAT_10 + timedelta(hours=1))
        merged = merge_records(a, b)
        assert merged.external_id == "goout-1"
        assert merged.start_datetime == SAT_10

    def test_merge_is_not_symmetric(self):
        a = _rec(external_id="a", source="goout.net")
        b = _rec(external_id="b", source="kdykde.cz", start_datetime=SAT_10 + timedelta(hours=1))
        ab = merge_records(a, b)
        ba = merge_records(b, a)

        assert ab != ba
        assert (ab.external_id, ab.start_datetime, ab.source) == ("a", SAT_10, "goout.net,kdykde.cz")
        assert (ba.external_id, ba.start_datetime, ba.source) == ("b", SAT_10 + timedelta(hours=1), "kdykde.cz,goout.net")

    def test_longer_text_wins_ties_keep_first(self):
        a = _rec(title="Koncert", description="Krátký popis")
        b = _rec(external_id="x-2", title="Koncert v parku", description="Delší a podrobnější popis akce")
        merged = merge_records(a, b)
        assert merged.title == "Koncert v parku"
        assert merged.description == "Delší a podrobnější popis akce"

        tie = merge_records(_rec(title="AAAA"), _rec(external_id="x-2", title="BBBB"))
        assert tie.title == "AAAA"

    def test_sources_are_concatenated_without_repeats(self):
        a = _rec(source="goout.net,kdykde.cz")
        b = _rec(external_id="x-2", source="kdykde.cz")
        assert merge_records(a, b).source == "goout.net,kdykde.cz"

        c = _rec(external_id="x-3", source="praguest.com")
        assert merge_records(a, c).source == "goout.net,kdykde.cz,praguest.com"

    def test_age_range_is_intersected(self):
        a = _rec(age_min=2, age_max=10)
        b = _rec(external_id="x-2", age_min=4, age_max=12)
        merged = merge_records(a, b)
        assert (merged.age_min, merged.age_max) == (4, 10)

    def test_age_range_one_sided(self):
        a = _rec(age_min=3)
        b = _rec(external_id="x-2", age_max=8)
        merged = merge_records(a, b)
        assert (merged.age_min, merged.age_max) == (3, 8)

    def test_disjoint_age_ranges_keep_first(self):
        a = _rec(age_min=0, age_max=3)
        b = _rec(external_id="x-2", age_min=6, age_max=10)
        merged = merge_records(a, b)
        assert (merged.age_min, merged.age_max) == (0, 3)

    def test_prices_take_minimum_or_whichever_is_set(self):
        a = _rec(adult_price=150, child_price=None, family_price=400)
        b = _rec(external_id="x-2", adult_price=120, child_price=80)
        merged = merge_records(a, b)
        assert merged.adult_price == 120
        assert merged.child_price == 80
        assert merged.family_price == 400

    def test_free_price_is_kept(self):
        a = _rec(adult_price=0)
        b = _rec(external_id="x-2", adult_price=50)
        assert merge_records(a, b).adult_price == 0

    def test_outdoor_is_or(self):
        assert merge_records(_rec(is_outdoor=False), _rec(external_id="x-2", is_outdoor=True)).is_outdoor is True
        assert merge_records(_rec(is_outdoor=None), _rec(external_id="x-2", is_outdoor=False)).is_outdoor is False
        assert merge_records(_rec(), _rec(external_id="x-2")).is_outdoor is None

    def test_optional_fields_prefer_first(self):
        a = _rec(location_name="Letná", image_url=None, booking_url="https://a.example/1")
        b = _rec(
            external_id="x-2",
            location_name="Letenské sady",
            image_url="https://b.example/img.jpg",
            booking_url="https://b.example/1",
        )
        merged = merge_records(a, b)
        assert merged.location_name == "Letná"
        assert merged.image_url == "https://b.example/img.jpg"
        assert merged.booking_url == "https://a.example/1"


# ---------------------------------------------------------------------------
# Part 3: pass
# ---------------------------------------------------------------------------

def _mixed_batch() -> list[RawRecord]:
    return [
        _rec(location_name="Letná park", adult_price=100),
        _rec(external_id="zoo-1", source="praguest.com", title="Noc v ZOO", location_name="Zoo Praha"),
        _rec(
            external_id="kdykde-7",
            source="kdykde.cz",
            title="Koncert v parku!",
            location_name="Letná park",
            adult_price=110,
        ),
        _rec(
            external_id="zoo-2",
            source="goout.net",
            title="Noc v Zoo",
            location_name="Zoo Praha",
            description="Večerní prohlídka zoo s průvodcem",
        ),
        _rec(external_id="other-1", title="Keramická dílna", start_datetime=SAT_10 + timedelta(days=3)),
    ]


class TestDeduplicate:
    def test_groups_and_order(self):
        out = deduplicate(_mixed_batch())
        assert [r.external_id for r in out] == ["goout-1", "zoo-1", "other-1"]
        assert out[1].source == "praguest.com,goout.net"
        assert out[1].description == "Večerní prohlídka zoo s průvodcem"

    def test_idempotent(self):
        once = deduplicate(_mixed_batch())
        twice = deduplicate(once)
        assert twice == once

    def test_idempotent_when_merge_changes_the_title(self):
        # a~c 0.73, a~b 0.82, b~c 0.91: c only matches after b's longer
        # title has been merged into a
        a = _rec(external_id="a", title="Den detí")
        c = _rec(external_id="c", title="Hon na deti")
        b = _rec(external_id="b", title="Den na deti")
        assert not is_duplicate(a, c)

        once = deduplicate([a, c, b])
        assert [r.external_id for r in once] == ["a"]
        assert once[0].title == "Den na deti"
        assert deduplicate(once) == once

    def test_empty_and_single(self):
        assert deduplicate([]) == []
        one = [_rec()]
        assert deduplicate(one) == one

    def test_find_duplicate_groups_does_not_merge(self):
        groups = find_duplicate_groups(_mixed_batch())
        assert [[r.external_id for r in g] for g in groups] == [
            ["goout-1", "kdykde-7"],
            ["zoo-1", "zoo-2"],
        ]
