# family_events/weather.py
"""
Daily weather forecast for the origin location (OpenWeatherMap 5-day/3-hour API).

The pipeline fetches the forecast once per run and looks days up by local
date. Results are cached in an explicit WeatherCache (default TTL 3h); when
the provider fails, the last cached forecast is served, else an empty list.
"""
from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence

import requests

from .config import OPENWEATHER_API_KEY, WEATHER_CACHE_TTL_S
from .geo.distance import ORIGIN
from .localtime import local_date, to_local
from .models import DayWeather

logger = logging.getLogger(__name__)

OPENWEATHER_API = "https://api.openweathermap.org/data/2.5/forecast"
MAX_DAYS = 7

# midday sample window (local hours, inclusive)
SAMPLE_HOUR_MIN = 10
SAMPLE_HOUR_MAX = 16

BAD_CONDITIONS = ("rain", "storm", "snow")


def is_good_for_outdoor(temperature: float, condition: str) -> bool:
    cond = (condition or "").lower()
    return 15 <= temperature <= 30 and not any(c in cond for c in BAD_CONDITIONS)


def parse_forecast(payload: Any, tz_name: Optional[str] = None) -> list[DayWeather]:
    """
    Reduce 3-hourly entries to one DayWeather per local date: the first
    sample falling between 10:00 and 16:00. At most MAX_DAYS entries.
    """
    items = (payload or {}).get("list") or []
    out: list[DayWeather] = []
    seen: set[str] = set()

    for item in items:
        try:
            dt = to_local(datetime.fromtimestamp(int(item["dt"]), tz=timezone.utc), tz_name)
            temperature = float(item["main"]["temp"])
        except (KeyError, TypeError, ValueError):
            continue

        date_str = dt.date().isoformat()
        if date_str in seen:
            continue
        if dt.hour < SAMPLE_HOUR_MIN or dt.hour > SAMPLE_HOUR_MAX:
            continue

        weather = item.get("weather") or [{}]
        condition = str((weather[0] or {}).get("main") or "unknown").lower()

        seen.add(date_str)
        out.append(
            DayWeather(
                date=date_str,
                temperature=temperature,
                condition=condition,
                is_good_for_outdoor=is_good_for_outdoor(temperature, condition),
            )
        )
        if len(out) >= MAX_DAYS:
            break

    return out


def weather_for_date(forecast: Sequence[DayWeather], when: datetime) -> Optional[DayWeather]:
    date_str = local_date(when).isoformat()
    for day in forecast:
        if day.date == date_str:
            return day
    return None


class WeatherCache:
    def __init__(
        self,
        ttl_s: float = WEATHER_CACHE_TTL_S,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_s = ttl_s
        self._clock = clock
        self._lock = threading.Lock()
        self._data: Optional[list[DayWeather]] = None
        self._stored_at = 0.0

    def get_fresh(self) -> Optional[list[DayWeather]]:
        with self._lock:
            if self._data is not None and self._clock() - self._stored_at < self.ttl_s:
                return list(self._data)
            return None

    def get_stale(self) -> Optional[list[DayWeather]]:
        with self._lock:
            return list(self._data) if self._data is not None else None

    def set(self, data: Sequence[DayWeather]) -> None:
        with self._lock:
            self._data = list(data)
            self._stored_at = self._clock()

    def clear(self) -> None:
        with self._lock:
            self._data = None
            self._stored_at = 0.0


class WeatherService:
    def __init__(
        self,
        api_key: Optional[str] = OPENWEATHER_API_KEY,
        *,
        origin: tuple[float, float] = ORIGIN,
        cache: Optional[WeatherCache] = None,
        session: Optional[requests.Session] = None,
        timeout_s: int = 10,
    ) -> None:
        self.api_key = api_key
        self.origin = origin
        self.cache = cache if cache is not None else WeatherCache()
        self.session = session or requests.Session()
        self.timeout_s = timeout_s

    def forecast(self) -> list[DayWeather]:
        if not self.api_key:
            logger.warning("[weather] OPENWEATHER_API_KEY not configured; no forecast")
            return []

        cached = self.cache.get_fresh()
        if cached is not None:
            return cached

        try:
            resp = self.session.get(
                OPENWEATHER_API,
                params={
                    "lat": self.origin[0],
                    "lon": self.origin[1],
                    "appid": self.api_key,
                    "units": "metric",
                    "cnt": 40,
                },
                timeout=self.timeout_s,
            )
            resp.raise_for_status()
            data = parse_forecast(resp.json())
        except (requests.RequestException, ValueError) as e:
            logger.warning("[weather] forecast fetch failed: %s: %s", type(e).__name__, e)
            return self.cache.get_stale() or []

        self.cache.set(data)
        return data
