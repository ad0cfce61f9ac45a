# family_events/scoring/rules.py
"""
Scoring rule tables.

Every keyword heuristic used by the scoring engine lives here as data:
a KeywordRule is "if any keyword occurs in the lower-cased category (and
none of the `unless` keywords does), add `delta` points". Rules apply
independently and at most once each; the engine sums them.

Profile-specific preferences (hour windows, duration bands, unknown-age
score) are grouped per AudienceProfile in PROFILE_RULES.
"""
from __future__ import annotations

from dataclasses import dataclass

from ..models import AudienceProfile


@dataclass(frozen=True)
class KeywordRule:
    name: str
    keywords: tuple[str, ...]
    delta: int
    unless: tuple[str, ...] = ()

    def applies(self, text: str) -> bool:
        if not any(kw in text for kw in self.keywords):
            return False
        return not any(u in text for u in self.unless)


@dataclass(frozen=True)
class HourWindow:
    start: int  # inclusive
    end: int    # exclusive
    points: int


@dataclass(frozen=True)
class DurationBand:
    min_minutes: int  # inclusive
    max_minutes: int  # inclusive
    points: int


@dataclass(frozen=True)
class ProfileRules:
    unknown_age_score: int
    hour_windows: tuple[HourWindow, ...]
    duration_bands: tuple[DurationBand, ...]  # first match wins
    duration_default: int
    keyword_rules: tuple[KeywordRule, ...]


# ---------------------------------------------------------------------------
# Type / category
# ---------------------------------------------------------------------------

TYPE_BASE = 5
TYPE_MAX = 15
OUTDOOR_GOOD_WEATHER = 8
OUTDOOR_BAD_WEATHER = -3

GENERAL_TYPE_RULES: tuple[KeywordRule, ...] = (
    KeywordRule("educational", ("museum", "educational", "workshop"), 7),
    KeywordRule("interactive", ("workshop", "interactive", "sport"), 5),
)

INFANT_TYPE_RULES: tuple[KeywordRule, ...] = (
    # penalties
    KeywordRule("loud_concert", ("concert",), -15, unless=("kids", "children")),
    KeywordRule("nightlife", ("club", "nightclub", "bar"), -20),
    KeywordRule("lecture", ("lecture", "conference", "business"), -18),
    KeywordRule("scary", ("horror", "scary"), -20),
    KeywordRule("long_theater", ("theater",), -2, unless=("puppet",)),
    # affinities
    KeywordRule("play", ("playground", "soft play", "puppet"), 9),
    KeywordRule("animals", ("petting zoo", "farm", "animals"), 8),
    KeywordRule("sensory", ("music", "sensory"), 7),
)

CHILD_TYPE_RULES: tuple[KeywordRule, ...] = (
    # penalties
    KeywordRule("nightlife", ("nightclub", "bar crawl"), -20),
    KeywordRule("lecture", ("business", "networking", "lecture", "conference"), -15),
    KeywordRule("scary", ("horror",), -10, unless=("mild",)),
    # affinities
    KeywordRule("learning", ("museum", "science", "educational"), 8),
    KeywordRule("active", ("sport", "climbing", "adventure"), 7),
    KeywordRule("creative", ("workshop", "craft", "art"), 7),
    KeywordRule("stage", ("theater", "cinema"), 6),
)

FAMILY_TYPE_RULES: tuple[KeywordRule, ...] = (
    KeywordRule("outing", ("festival", "zoo", "park"), 7),
    KeywordRule("exhibition", ("exhibition", "museum"), 6),
    KeywordRule("nature", ("outdoor", "nature", "hiking"), 6),
)


# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------

WEEKEND_BONUS = 5
TIMING_MAX = 10


# ---------------------------------------------------------------------------
# Seasonality
# ---------------------------------------------------------------------------

SEASONAL_KEYWORDS: tuple[str, ...] = (
    "festival",
    "speciální",
    "výjimečný",
    "limited",
    "exkluzivní",
    "pouze",
    "jednou",
    "naposledy",
    "premiéra",
    "premiere",
    "closing",
)
SEASONAL_KEYWORD_POINTS = 5

# month -> points
SEASONAL_MONTHS: dict[int, int] = {
    12: 5,  # Christmas markets / advent
    3: 3,   # Easter (approximate)
    4: 3,
}


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

PROFILE_RULES: dict[AudienceProfile, ProfileRules] = {
    AudienceProfile.INFANT: ProfileRules(
        unknown_age_score=8,
        hour_windows=(HourWindow(9, 11, 5), HourWindow(11, 14, 2)),
        duration_bands=(
            DurationBand(30, 60, 10),
            DurationBand(60, 90, 7),
            DurationBand(1, 29, 5),
        ),
        duration_default=3,
        keyword_rules=INFANT_TYPE_RULES,
    ),
    AudienceProfile.CHILD: ProfileRules(
        unknown_age_score=12,
        hour_windows=(HourWindow(14, 17, 3),),
        duration_bands=(
            DurationBand(90, 180, 10),
            DurationBand(60, 90, 8),
            DurationBand(180, 240, 7),
        ),
        duration_default=5,
        keyword_rules=CHILD_TYPE_RULES,
    ),
    AudienceProfile.FAMILY: ProfileRules(
        unknown_age_score=15,
        hour_windows=(HourWindow(10, 18, 2),),
        duration_bands=(
            DurationBand(90, 240, 10),
            DurationBand(60, 90, 8),
        ),
        duration_default=6,
        keyword_rules=FAMILY_TYPE_RULES,
    ),
}
