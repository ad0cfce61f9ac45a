"""
Ingestion boundary: loose scraper payloads -> strict RawRecord.

Scrapers hand back whatever their source gives them (JSON-LD dicts, API
rows with camelCase keys, date strings in local notation). This module is
the only place that tolerates that looseness. Everything downstream gets a
validated, immutable RawRecord or nothing.

Date strings:
  - ISO 8601 is parsed strictly with fromisoformat (naive -> TIMEZONE)
  - anything else goes through dateparser with Czech/English locales, DMY
"""
from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Mapping, Optional, Union
from zoneinfo import ZoneInfo

import dateparser
from pydantic import ValidationError

from ..config import TIMEZONE
from ..errors import RecordValidationError
from ..models import RawRecord

Payload = Union[Mapping[str, Any], RawRecord]

# camelCase keys used by the JSON sources and the old admin API
_ALIASES: dict[str, str] = {
    "externalId": "external_id",
    "startDatetime": "start_datetime",
    "startDate": "start_datetime",
    "endDatetime": "end_datetime",
    "endDate": "end_datetime",
    "locationName": "location_name",
    "ageMin": "age_min",
    "ageMax": "age_max",
    "adultPrice": "adult_price",
    "childPrice": "child_price",
    "familyPrice": "family_price",
    "isOutdoor": "is_outdoor",
    "durationMinutes": "duration_minutes",
    "imageUrl": "image_url",
    "bookingUrl": "booking_url",
}

_RECORD_FIELDS = frozenset(RawRecord.model_fields)

_PRICE_FIELDS = ("adult_price", "child_price", "family_price")

_ISO_PREFIX_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")
_PRICE_RE = re.compile(r"(\d+(?:[.,]\d+)?)")
_FREE_WORDS = ("zdarma", "free", "vstup volný", "volný vstup")


def parse_iso_datetime(s: str, default_tz: ZoneInfo) -> Optional[datetime]:
    """Parse ISO 8601, trailing 'Z' as UTC, naive as default_tz."""
    s = (s or "").strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=default_tz)
    return dt


def parse_datetime(value: Any, *, tz_name: str = TIMEZONE) -> Optional[datetime]:
    """
    datetime passthrough, ISO strings strictly, other strings via dateparser.
    Returns None when nothing sensible can be read.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        return None

    s = value.strip()
    if not s:
        return None

    tz = ZoneInfo(tz_name)
    if _ISO_PREFIX_RE.match(s):
        parsed = parse_iso_datetime(s, tz)
        if parsed is not None:
            return parsed

    return dateparser.parse(
        s,
        languages=["cs", "en"],
        settings={
            "TIMEZONE": tz_name,
            "RETURN_AS_TIMEZONE_AWARE": True,
            "DATE_ORDER": "DMY",
        },
    )


def parse_price(value: Any) -> Optional[float]:
    """
    "150 Kč" -> 150.0, "zdarma" -> 0.0, 80 -> 80.0, "" / None -> None.
    Negative numbers are left for the model to reject.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        return None

    s = value.strip().lower()
    if not s:
        return None
    if any(w in s for w in _FREE_WORDS):
        return 0.0
    if s.startswith("-"):
        try:
            return float(s.replace(",", "."))
        except ValueError:
            return None

    m = _PRICE_RE.search(s.replace(" ", ""))
    if not m:
        return None
    return float(m.group(1).replace(",", "."))


def _canonical_keys(payload: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in payload.items():
        name = _ALIASES.get(key, key)
        if name in _RECORD_FIELDS:
            out[name] = value
    return out


def coerce_raw_record(payload: Payload, *, source: str) -> RawRecord:
    """
    Validate one scraper payload into a RawRecord.

    `source` fills in the record's source when the payload doesn't carry
    one. Raises RecordValidationError with a one-line message on any
    problem; pydantic's error details are folded into that message.
    """
    if isinstance(payload, RawRecord):
        return payload

    if not isinstance(payload, Mapping):
        raise RecordValidationError(
            f"payload must be a mapping, got {type(payload).__name__}",
            source=source,
        )

    data = _canonical_keys(payload)
    data.setdefault("source", source)
    external_id = data.get("external_id")

    raw_start = data.get("start_datetime")
    start = parse_datetime(raw_start)
    if start is None:
        raise RecordValidationError(
            f"unparseable start_datetime={raw_start!r}",
            source=source,
            external_id=external_id,
        )
    data["start_datetime"] = start

    if data.get("end_datetime") is not None:
        data["end_datetime"] = parse_datetime(data["end_datetime"])

    for name in _PRICE_FIELDS:
        if name in data:
            data[name] = parse_price(data[name])

    try:
        return RawRecord(**data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'record'}: {err['msg']}"
            for err in e.errors()
        )
        raise RecordValidationError(
            f"invalid record external_id={external_id!r}: {problems}",
            source=source,
            external_id=external_id,
        ) from e
