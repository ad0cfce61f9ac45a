# family_events/scoring/engine.py
"""
Audience relevance scoring.

Pure and deterministic: same (record, profile, weather) always gives the
same score. No DB access, no clock reads.

Formula:
  raw   = 50 + age + distance + price + type + timing + duration + seasonality
  score = round(min(100, raw * completeness))            → int in [0, 100]

Factor ranges:
  age          0–25   graduated distance from the profile's target age
  distance     0–15   banded km from origin
  price        0–15   banded effective family price (2 adults + 1 child)
  type         0–15   category keywords + outdoor/weather (see rules.py)
  timing       0–10   weekend + preferred hour window
  duration     0–10   profile-specific optimal bands
  seasonality  0–5    limited-time keywords or holiday months
  completeness 0.7–1.0 multiplier on the whole sum

Missing data is a penalty, never a neutral default: unknown age, distance,
price, or duration each score low, and the completeness multiplier scales
the total down again.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..localtime import to_local
from ..models import AudienceProfile, DayWeather, GeoRecord, ScoredRecord
from .rules import (
    GENERAL_TYPE_RULES,
    OUTDOOR_BAD_WEATHER,
    OUTDOOR_GOOD_WEATHER,
    PROFILE_RULES,
    SEASONAL_KEYWORD_POINTS,
    SEASONAL_KEYWORDS,
    SEASONAL_MONTHS,
    TIMING_MAX,
    TYPE_BASE,
    TYPE_MAX,
    WEEKEND_BONUS,
)

BASE_SCORE = 50

AGE_MAX = 25
AGE_TARGETLESS_KNOWN = 12

DISTANCE_UNKNOWN = 3
PRICE_UNKNOWN = 3
DURATION_UNKNOWN = 2

COMPLETENESS_FLOOR = 0.7
DESCRIPTION_MIN_LEN = 50


@dataclass(frozen=True)
class ScoreResult:
    score: int
    factors: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ScoreBadge:
    label: str
    color: str


# ---------------------------------------------------------------------------
# Factors
# ---------------------------------------------------------------------------

def _graduated_miss(diff: int) -> int:
    """Target age outside the stated range by `diff` whole years."""
    if diff <= 1:
        return 15
    if diff <= 2:
        return 10
    if diff <= 4:
        return 5
    return 0


def age_score(age_min: Optional[int], age_max: Optional[int], profile: AudienceProfile) -> int:
    """
    0–25. Unknown range → small profile constant (riskier for younger
    audiences, so lower). A bound of 0 is a real bound.
    """
    if age_min is None and age_max is None:
        return PROFILE_RULES[profile].unknown_age_score

    target = profile.target_age
    if target is None:
        return AGE_TARGETLESS_KNOWN

    if age_min is not None and age_max is not None and age_min <= target <= age_max:
        return AGE_MAX

    # "X+ years"
    if age_min is not None and age_max is None and target >= age_min:
        diff = target - age_min
        if diff < 2:
            return 23
        if diff < 5:
            return 20
        return 16

    # "up to X years"
    if age_max is not None and age_min is None and target <= age_max:
        diff = age_max - target
        if diff > 2:
            return 23
        return 20

    if age_min is not None and target < age_min:
        return _graduated_miss(age_min - target)

    if age_max is not None and target > age_max:
        return _graduated_miss(target - age_max)

    return 0


def distance_score(distance_km: Optional[float]) -> int:
    """0–15. Unknown location scores low, not moderate."""
    if distance_km is None:
        return DISTANCE_UNKNOWN
    if distance_km < 10:
        return 15
    if distance_km < 30:
        return 10
    if distance_km < 70:
        return 5
    if distance_km < 130:
        return 2
    return 0


def effective_family_price(
    adult_price: Optional[float],
    child_price: Optional[float],
    family_price: Optional[float],
) -> Optional[float]:
    """
    Cheapest way in for 2 adults + 1 child.

    A missing child price is assumed equal to the adult price and vice versa;
    a family ticket wins when it is cheaper. None when nothing is known.
    """
    adult = adult_price if adult_price is not None else child_price
    child = child_price if child_price is not None else adult_price

    candidates: list[float] = []
    if family_price is not None:
        candidates.append(family_price)
    if adult is not None and child is not None:
        candidates.append(2 * adult + child)

    if not candidates:
        return None
    return min(candidates)


def price_score(
    adult_price: Optional[float],
    child_price: Optional[float],
    family_price: Optional[float],
) -> int:
    """0–15. No price signal is uncertainty, not "free"."""
    effective = effective_family_price(adult_price, child_price, family_price)
    if effective is None:
        return PRICE_UNKNOWN
    if effective == 0:
        return 15
    if effective < 200:
        return 12
    if effective < 500:
        return 8
    if effective < 1000:
        return 4
    return 2


def type_score(
    category: Optional[str],
    is_outdoor: Optional[bool],
    profile: AudienceProfile,
    weather: Optional[DayWeather] = None,
) -> int:
    """
    0–15. Running total starts at TYPE_BASE and may go negative through
    penalties before the final clamp.
    """
    score = TYPE_BASE

    if is_outdoor and weather is not None:
        score += OUTDOOR_GOOD_WEATHER if weather.is_good_for_outdoor else OUTDOOR_BAD_WEATHER

    if category:
        cat = category.lower()
        for rule in GENERAL_TYPE_RULES:
            if rule.applies(cat):
                score += rule.delta
        for rule in PROFILE_RULES[profile].keyword_rules:
            if rule.applies(cat):
                score += rule.delta

    return max(0, min(TYPE_MAX, score))


def timing_score(start: datetime, profile: AudienceProfile) -> int:
    """0–10. Weekday and hour are taken in local time."""
    local = to_local(start)
    score = 0

    if local.weekday() >= 5:
        score += WEEKEND_BONUS

    for window in PROFILE_RULES[profile].hour_windows:
        if window.start <= local.hour < window.end:
            score += window.points
            break

    return min(score, TIMING_MAX)


def duration_score(duration_minutes: Optional[int], profile: AudienceProfile) -> int:
    """0–10."""
    if duration_minutes is None:
        return DURATION_UNKNOWN

    rules = PROFILE_RULES[profile]
    for band in rules.duration_bands:
        if band.min_minutes <= duration_minutes <= band.max_minutes:
            return band.points
    return rules.duration_default


def seasonality_score(title: str, description: Optional[str], start: Optional[datetime]) -> int:
    """0–5. Keyword hit wins over calendar month."""
    text = f"{title} {description or ''}".lower()
    if any(kw in text for kw in SEASONAL_KEYWORDS):
        return SEASONAL_KEYWORD_POINTS

    if start is not None:
        return SEASONAL_MONTHS.get(to_local(start).month, 0)

    return 0


def completeness_multiplier(record: GeoRecord) -> float:
    """
    0.7 (nothing optional known) … 1.0 (everything known).

    Weights:
      age range (both bounds)  2
      distance                 2
      any price                1
      duration                 1
      description > 50 chars   1
      image                    1
    """
    present = 0
    total = 0

    total += 2
    if record.age_min is not None and record.age_max is not None:
        present += 2

    total += 2
    if record.distance_from_origin is not None:
        present += 2

    total += 1
    if record.has_any_price:
        present += 1

    total += 1
    if record.duration_minutes is not None:
        present += 1

    total += 1
    if record.description and len(record.description) > DESCRIPTION_MIN_LEN:
        present += 1

    total += 1
    if record.image_url:
        present += 1

    return COMPLETENESS_FLOOR + (present / total) * (1.0 - COMPLETENESS_FLOOR)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def score_record(
    record: GeoRecord,
    profile: AudienceProfile,
    weather: Optional[DayWeather] = None,
) -> ScoreResult:
    factors: dict[str, Any] = {
        "age": age_score(record.age_min, record.age_max, profile),
        "distance": distance_score(record.distance_from_origin),
        "price": price_score(record.adult_price, record.child_price, record.family_price),
        "type": type_score(record.category, record.is_outdoor, profile, weather),
        "timing": timing_score(record.start_datetime, profile),
        "duration": duration_score(record.duration_minutes, profile),
        "seasonality": seasonality_score(record.title, record.description, record.start_datetime),
    }
    raw = BASE_SCORE + sum(factors.values())
    multiplier = completeness_multiplier(record)

    total = min(100.0, raw * multiplier)
    score = max(0, min(100, _round_half_up(total)))

    factors["raw"] = raw
    factors["completeness"] = multiplier
    factors["weather"] = 5 if weather is not None and weather.is_good_for_outdoor else 0

    return ScoreResult(score=score, factors=factors)


def score_for_all_profiles(record: GeoRecord, weather: Optional[DayWeather] = None) -> ScoredRecord:
    """Three independent evaluations, one per AudienceProfile."""
    return ScoredRecord(
        **record.model_dump(exclude={"score_infant", "score_child", "score_family"}),
        score_infant=score_record(record, AudienceProfile.INFANT, weather).score,
        score_child=score_record(record, AudienceProfile.CHILD, weather).score,
        score_family=score_record(record, AudienceProfile.FAMILY, weather).score,
    )


def score_badge(score: int) -> ScoreBadge:
    if score >= 90:
        return ScoreBadge("Must See!", "#DC2626")
    if score >= 75:
        return ScoreBadge("Highly Recommended", "#EA580C")
    if score >= 60:
        return ScoreBadge("Good Option", "#CA8A04")
    if score >= 45:
        return ScoreBadge("Consider", "#16A34A")
    return ScoreBadge("Low Priority", "#6B7280")
