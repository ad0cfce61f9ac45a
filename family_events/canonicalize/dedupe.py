# family_events/canonicalize/dedupe.py
"""
Cross-source deduplication of RawRecords.

Pure module, no I/O. Used by the pipeline between scraping and geocoding.

=== Composite duplicate score ===

Weighted blend of independently normalized signals (0.0–1.0):

  title     0.4   normalized-title edit similarity (always applied)
  date      0.3   same local calendar day (always applied)
  time      0.1   bonus, applied only when same day AND starts within 2h
  location  0.2   only when both records carry a location string
  price     0.1   only when both records carry an adult price

score = sum(weight * signal) / sum(applied weights)

A signal whose inputs are missing is dropped from numerator and
denominator alike, so sparse records are not dragged below threshold.

=== Merge policy ===

Order-sensitive: the first record of a group wins identity and start time.
See merge_records() for the per-field rules.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence, TypeVar

from ..localtime import local_date, to_local
from ..models import RawRecord
from .similarity import normalize_text, string_similarity

DEFAULT_THRESHOLD = 0.8

W_TITLE = 0.4
W_SAME_DAY = 0.3
W_CLOSE_TIME = 0.1
W_LOCATION = 0.2
W_PRICE = 0.1

CLOSE_TIME_HOURS = 2.0

N = TypeVar("N", int, float)


# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------

def is_same_day(a: datetime, b: datetime) -> bool:
    return local_date(a) == local_date(b)


def is_within_hours(a: datetime, b: datetime, hours: float = CLOSE_TIME_HOURS) -> bool:
    diff_s = abs((to_local(a) - to_local(b)).total_seconds())
    return diff_s / 3600.0 <= hours


def price_similarity(a: float, b: float) -> float:
    avg = (a + b) / 2
    if avg <= 0:
        return 1.0  # both free
    return 1.0 - min(1.0, abs(a - b) / avg)


# ---------------------------------------------------------------------------
# Composite score
# ---------------------------------------------------------------------------

def duplicate_score(a: RawRecord, b: RawRecord) -> float:
    """
    Likelihood that *a* and *b* describe the same real-world event.

    Returns 0.0–1.0. Symmetric: duplicate_score(a, b) == duplicate_score(b, a).
    """
    score = 0.0
    weights = 0.0

    score += W_TITLE * string_similarity(normalize_text(a.title), normalize_text(b.title))
    weights += W_TITLE

    if is_same_day(a.start_datetime, b.start_datetime):
        score += W_SAME_DAY
        if is_within_hours(a.start_datetime, b.start_datetime):
            score += W_CLOSE_TIME
            weights += W_CLOSE_TIME
    weights += W_SAME_DAY

    loc_a = normalize_text(a.location_name or a.address)
    loc_b = normalize_text(b.location_name or b.address)
    if loc_a and loc_b:
        score += W_LOCATION * string_similarity(loc_a, loc_b)
        weights += W_LOCATION

    if a.adult_price is not None and b.adult_price is not None:
        score += W_PRICE * price_similarity(a.adult_price, b.adult_price)
        weights += W_PRICE

    if weights <= 0.0:
        return 0.0
    return score / weights


def is_duplicate(a: RawRecord, b: RawRecord, threshold: float = DEFAULT_THRESHOLD) -> bool:
    return duplicate_score(a, b) >= threshold


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------

def _first(a, b):
    return a if a is not None else b


def _longer(a: Optional[str], b: Optional[str]) -> Optional[str]:
    """Longer of two optional strings; ties and missing b keep a."""
    if a is None:
        return b
    if b is None:
        return a
    return b if len(b) > len(a) else a


def _min_defined(a: Optional[N], b: Optional[N]) -> Optional[N]:
    if a is not None and b is not None:
        return min(a, b)
    return _first(a, b)


def _merge_sources(a: str, b: str) -> str:
    names = [s for s in a.split(",") if s]
    for s in b.split(","):
        if s and s not in names:
            names.append(s)
    return ",".join(names)


def _merge_age_range(a: RawRecord, b: RawRecord) -> tuple[Optional[int], Optional[int]]:
    """
    Intersect age ranges: the most restrictive statement wins.
    Disjoint ranges contradict each other; a's range is kept in that case.
    """
    if a.age_min is not None and b.age_min is not None:
        age_min = max(a.age_min, b.age_min)
    else:
        age_min = _first(a.age_min, b.age_min)

    if a.age_max is not None and b.age_max is not None:
        age_max = min(a.age_max, b.age_max)
    else:
        age_max = _first(a.age_max, b.age_max)

    if age_min is not None and age_max is not None and age_min > age_max:
        return a.age_min, a.age_max
    return age_min, age_max


def _merge_outdoor(a: Optional[bool], b: Optional[bool]) -> Optional[bool]:
    if a is None and b is None:
        return None
    return bool(a) or bool(b)


def merge_records(a: RawRecord, b: RawRecord) -> RawRecord:
    """
    Collapse duplicate *b* into *a*. Not symmetric: a's identity wins.

      external_id, start_datetime       a
      source                            "a,b" (no repeated names)
      title, description                longer one (ties keep a)
      end_datetime, location, address,
      category, duration, image,
      booking_url                       a if present else b
      age_min / age_max                 max / min (intersection)
      prices                            min of both, else whichever is set
      is_outdoor                        a OR b
    """
    age_min, age_max = _merge_age_range(a, b)
    return RawRecord(
        external_id=a.external_id,
        source=_merge_sources(a.source, b.source),
        title=_longer(a.title, b.title) or a.title,
        description=_longer(a.description, b.description),
        start_datetime=a.start_datetime,
        end_datetime=_first(a.end_datetime, b.end_datetime),
        location_name=_first(a.location_name, b.location_name),
        address=_first(a.address, b.address),
        category=_first(a.category, b.category),
        age_min=age_min,
        age_max=age_max,
        adult_price=_min_defined(a.adult_price, b.adult_price),
        child_price=_min_defined(a.child_price, b.child_price),
        family_price=_min_defined(a.family_price, b.family_price),
        is_outdoor=_merge_outdoor(a.is_outdoor, b.is_outdoor),
        duration_minutes=_first(a.duration_minutes, b.duration_minutes),
        image_url=_first(a.image_url, b.image_url),
        booking_url=_first(a.booking_url, b.booking_url),
    )


# ---------------------------------------------------------------------------
# Passes
# ---------------------------------------------------------------------------

def _merge_pass(records: Sequence[RawRecord], threshold: float) -> list[RawRecord]:
    """
    One O(n²) pass. Each unconsumed record opens a group; later
    unconsumed records are compared against the group's running canonical
    record and merged into it when the score reaches *threshold*.
    """
    out: list[RawRecord] = []
    consumed = [False] * len(records)

    for i, rec in enumerate(records):
        if consumed[i]:
            continue
        consumed[i] = True
        canonical = rec

        for j in range(i + 1, len(records)):
            if consumed[j]:
                continue
            if is_duplicate(canonical, records[j], threshold):
                canonical = merge_records(canonical, records[j])
                consumed[j] = True

        out.append(canonical)

    return out


def deduplicate(records: Sequence[RawRecord], threshold: float = DEFAULT_THRESHOLD) -> list[RawRecord]:
    """
    Repeat _merge_pass until a pass merges nothing.

    A merge can change the canonical title, so a record that was judged
    against the group's first record alone may only match after a later
    merge. Iterating to a fixed point makes deduplicate(deduplicate(x))
    == deduplicate(x). Every extra pass shrinks the list, so at most n
    passes run.

    Output order follows the first record of each group.
    """
    current = list(records)
    while True:
        out = _merge_pass(current, threshold)
        if len(out) == len(current):
            return out
        current = out


def find_duplicate_groups(
    records: Sequence[RawRecord],
    threshold: float = DEFAULT_THRESHOLD,
) -> list[list[RawRecord]]:
    """
    Diagnostic view: groups of size > 1, each compared against its first
    (unmerged) record. Does not merge anything.
    """
    groups: list[list[RawRecord]] = []
    consumed = [False] * len(records)

    for i, rec in enumerate(records):
        if consumed[i]:
            continue
        consumed[i] = True
        group = [rec]

        for j in range(i + 1, len(records)):
            if consumed[j]:
                continue
            if is_duplicate(rec, records[j], threshold):
                group.append(records[j])
                consumed[j] = True

        if len(group) > 1:
            groups.append(group)

    return groups
