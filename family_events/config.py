import os
from dotenv import load_dotenv

load_dotenv()
load_dotenv(".env.local")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        print(f"[config] invalid float for {name}={raw!r}, using default {default}")
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        print(f"[config] invalid int for {name}={raw!r}, using default {default}")
        return default


# Supabase credentials are checked when a client is built (storage.get_supabase),
# so pure modules and tests import without them.
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY")

OPENWEATHER_API_KEY = os.getenv("OPENWEATHER_API_KEY")

TIMEZONE = os.getenv("TIMEZONE", "Europe/Prague")

# Prague city centre
ORIGIN_LAT = _env_float("ORIGIN_LAT", 50.0755)
ORIGIN_LON = _env_float("ORIGIN_LON", 14.4378)

MAX_DISTANCE_KM = _env_float("MAX_DISTANCE_KM", 130.0)
DEDUPE_THRESHOLD = _env_float("DEDUPE_THRESHOLD", 0.8)
SCRAPER_DELAY_S = _env_float("SCRAPER_DELAY_S", 2.0)
RETENTION_DAYS = _env_int("RETENTION_DAYS", 30)

GEOCODER_USER_AGENT = os.getenv("GEOCODER_USER_AGENT", "PragueFamilyEvents/1.0 (family-calendar-app)")
GEOCODER_COUNTRY_CODES = os.getenv("GEOCODER_COUNTRY_CODES", "cz")
GEOCODER_MIN_DELAY_S = _env_float("GEOCODER_MIN_DELAY_S", 1.0)

WEATHER_CACHE_TTL_S = _env_int("WEATHER_CACHE_TTL_S", 3 * 60 * 60)

RUN_LOCK_PATH = os.getenv("RUN_LOCK_PATH", "/tmp/family_events_pipeline.lock")
RUN_LOCK_STALE_S = _env_int("RUN_LOCK_STALE_S", 6 * 60 * 60)

# Optional override of the built-in source list: "name=url,name=url"
FAMILY_EVENTS_SOURCES = os.getenv("FAMILY_EVENTS_SOURCES", "")
