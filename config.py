import os
from dotenv import load_dotenv

load_dotenv()

# ── Storage ───────────────────────────────────────────────────────────────────
STORAGE_BASE_URL = os.getenv("GRIDMIX_STORAGE_URL", "http://localhost:8080/data")
STORAGE_MAX_CONCURRENT = int(os.getenv("GRIDMIX_STORAGE_MAX_CONCURRENT", "16"))
STORAGE_TIMEOUT_SECONDS = float(os.getenv("GRIDMIX_STORAGE_TIMEOUT_SECONDS", "20"))
STORAGE_MAX_RETRIES = 4
STORAGE_BACKOFF_SECONDS = 1.0
USER_AGENT = "gridmix/1.0 (point-series)"

# ── Physics ───────────────────────────────────────────────────────────────────
LAPSE_RATE_C_PER_M = 0.0065  # standard atmosphere temperature lapse rate
SNOW_CM_PER_MM_WATER = 0.7  # fresh snow depth per mm of water equivalent
SEASONAL_BINS_PER_YEAR = int(os.getenv("GRIDMIX_SEASONAL_BINS", "12"))

# ── Requests ──────────────────────────────────────────────────────────────────
DEFAULT_FORECAST_DAYS = 7
MAX_FORECAST_DAYS = 16
MAX_PAST_DAYS = 92
# nearest | land | sea
DEFAULT_CELL_SELECTION = os.getenv("GRIDMIX_CELL_SELECTION", "land")
REQUIRE_COMPLETE_SERIES = os.getenv("GRIDMIX_REQUIRE_COMPLETE", "false").lower() == "true"

# ── Refresh loop ──────────────────────────────────────────────────────────────
REFRESH_INTERVAL_SECONDS = int(os.getenv("GRIDMIX_REFRESH_INTERVAL_SECONDS", "3600"))
LOG_LEVEL = os.getenv("GRIDMIX_LOG_LEVEL", "INFO")

# Mixed sources, coarse to fine
MIXES = {
    "era5_seamless": ["era5", "era5_land"],
    "cams_seamless": ["cams_global", "cams_europe"],
}

# ── Location configuration ────────────────────────────────────────────────────
# key → { lat, lon, elevation (None = use model elevation), name, domain, variables }
LOCATIONS = {
    "INN": {
        "lat": 47.2692,
        "lon": 11.4041,
        "elevation": 574.0,
        "name": "Innsbruck",
        "domain": "era5_seamless",
        "variables": ["temperature_2m", "relative_humidity_2m", "snow_depth", "rain", "snowfall"],
    },
    "BER": {
        "lat": 52.5200,
        "lon": 13.4050,
        "elevation": None,
        "name": "Berlin",
        "domain": "cerra",
        "variables": ["temperature_2m", "dew_point_2m", "et0_fao_evapotranspiration", "weather_code"],
    },
    "SYD": {
        "lat": -33.8688,
        "lon": 151.2093,
        "elevation": 39.0,
        "name": "Sydney",
        "domain": "bom_access_global",
        "variables": ["temperature_2m", "rain", "showers", "soil_temperature_0_to_10cm"],
    },
    "PAR": {
        "lat": 48.8566,
        "lon": 2.3522,
        "elevation": None,
        "name": "Paris",
        "domain": "cams_seamless",
        "variables": ["pm2_5", "pm10", "ozone", "nitrogen_dioxide"],
    },
    "ZRH": {
        "lat": 47.3769,
        "lon": 8.5417,
        "elevation": 408.0,
        "name": "Zurich",
        "domain": "MRI_AGCM3_2_S",
        "bias_correction": True,
        "variables": ["temperature_2m_max", "temperature_2m_min", "precipitation_sum", "rain_sum"],
    },
}
