"""
Solar geometry for point series.

Declination, equation of time and the earth-sun distance factor follow the
Spencer (1971) Fourier series used by NOAA.  Radiation stored as an average
over the preceding interval ("backwards averaged") is handled by numerically
integrating the geometry over that interval.
"""
from __future__ import annotations

import numpy as np

from models.timerange import TimeRange

SOLAR_CONSTANT = 1367.0  # W/m²

# Sub-steps used to integrate over one backwards-averaged interval
_INTEGRATION_STEPS = 12

# Below this cosine of the zenith angle the beam-to-normal conversion is unstable
_MIN_COS_ZENITH = 0.02

# WMO sunshine threshold on direct normal irradiance
SUNSHINE_DNI_THRESHOLD = 120.0


def _solar_terms(t: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Declination (rad), equation of time (min), distance factor, UTC minute of day."""
    t = np.asarray(t, dtype=np.float64)
    seconds = t.astype(np.int64).astype("datetime64[s]")
    year_start = seconds.astype("datetime64[Y]").astype("datetime64[s]")
    day = (seconds - year_start).astype(np.float64) / 86400.0 + (t - np.floor(t)) / 86400.0
    g = 2.0 * np.pi / 365.0 * (day - 0.5)
    decl = (
        0.006918 - 0.399912 * np.cos(g) + 0.070257 * np.sin(g)
        - 0.006758 * np.cos(2 * g) + 0.000907 * np.sin(2 * g)
        - 0.002697 * np.cos(3 * g) + 0.00148 * np.sin(3 * g)
    )
    eot = 229.18 * (
        0.000075 + 0.001868 * np.cos(g) - 0.032077 * np.sin(g)
        - 0.014615 * np.cos(2 * g) - 0.040849 * np.sin(2 * g)
    )
    distance = (
        1.00011 + 0.034221 * np.cos(g) + 0.00128 * np.sin(g)
        + 0.000719 * np.cos(2 * g) + 0.000077 * np.sin(2 * g)
    )
    minutes = np.mod(t, 86400.0) / 60.0
    return decl, eot, distance, minutes


def _hour_angle(lon: float, eot: np.ndarray, minutes: np.ndarray) -> np.ndarray:
    true_solar_time = minutes + eot + 4.0 * lon
    return np.radians(true_solar_time / 4.0 - 180.0)


def cos_zenith(lat: float, lon: float, t) -> np.ndarray:
    decl, eot, _, minutes = _solar_terms(t)
    phi = np.radians(lat)
    ha = _hour_angle(lon, eot, minutes)
    return np.sin(phi) * np.sin(decl) + np.cos(phi) * np.cos(decl) * np.cos(ha)


def solar_azimuth(lat: float, lon: float, t) -> np.ndarray:
    """Degrees clockwise from north."""
    decl, eot, _, minutes = _solar_terms(t)
    phi = np.radians(lat)
    ha = _hour_angle(lon, eot, minutes)
    cz = np.sin(phi) * np.sin(decl) + np.cos(phi) * np.cos(decl) * np.cos(ha)
    sz = np.sqrt(np.maximum(1.0 - cz ** 2, 1e-12))
    cos_az = np.clip((np.sin(decl) - np.sin(phi) * cz) / (np.cos(phi) * sz + 1e-12), -1.0, 1.0)
    az = np.degrees(np.arccos(cos_az))
    ha_wrapped = np.mod(ha + np.pi, 2 * np.pi) - np.pi
    return np.where(ha_wrapped > 0, 360.0 - az, az)


def _backwards_mean(fn, time: TimeRange) -> np.ndarray:
    """Average ``fn(t)`` over the interval ``(t - dt, t]`` for each timestamp."""
    t = time.timestamps().astype(np.float64)
    step = time.dt_seconds / _INTEGRATION_STEPS
    acc = np.zeros(len(t))
    for k in range(_INTEGRATION_STEPS):
        acc += fn(t - time.dt_seconds + (k + 0.5) * step)
    return acc / _INTEGRATION_STEPS


def extraterrestrial_radiation_instant(lat: float, lon: float, time: TimeRange) -> np.ndarray:
    t = time.timestamps()
    _, _, distance, _ = _solar_terms(t)
    return SOLAR_CONSTANT * distance * np.maximum(cos_zenith(lat, lon, t), 0.0)


def extraterrestrial_radiation_backwards(lat: float, lon: float, time: TimeRange) -> np.ndarray:
    def fn(t):
        _, _, distance, _ = _solar_terms(t)
        return SOLAR_CONSTANT * distance * np.maximum(cos_zenith(lat, lon, t), 0.0)

    return _backwards_mean(fn, time)


def extraterrestrial_radiation_daily_sum(lat: float, lon: float, time: TimeRange) -> np.ndarray:
    """MJ/m² per day for daily timestamps at 00 UTC."""
    day = TimeRange(time.start + 86400, time.end + 86400, 86400)
    return extraterrestrial_radiation_backwards(lat, lon, day) * 86400 / 1e6


def backwards_averaged_to_instant_factor(lat: float, lon: float, time: TimeRange) -> np.ndarray:
    instant = extraterrestrial_radiation_instant(lat, lon, time)
    backwards = extraterrestrial_radiation_backwards(lat, lon, time)
    safe = np.where(backwards > 1.0, backwards, 1.0)
    return np.where(backwards > 1.0, instant / safe, 0.0)


def is_day(lat: float, lon: float, time: TimeRange) -> np.ndarray:
    return (cos_zenith(lat, lon, time.timestamps()) > 0).astype(np.float64)


def daylight_duration(lat: float, time: TimeRange) -> np.ndarray:
    """Seconds between sunrise and sunset for daily timestamps."""
    t = time.timestamps() + 43200
    decl, _, _, _ = _solar_terms(t)
    x = -np.tan(np.radians(lat)) * np.tan(decl)
    omega = np.arccos(np.clip(x, -1.0, 1.0))
    return 2.0 * np.degrees(omega) / 15.0 * 3600.0


def direct_normal_irradiance(direct, lat: float, lon: float, time: TimeRange, convert_to_instant: bool = False):
    """
    Beam irradiance on a plane facing the sun, from horizontal direct
    radiation averaged over the preceding interval.
    """
    direct = np.asarray(direct, dtype=np.float64)
    if convert_to_instant:
        direct = direct * backwards_averaged_to_instant_factor(lat, lon, time)
        cz = np.maximum(cos_zenith(lat, lon, time.timestamps()), 0.0)
    else:
        cz = _backwards_mean(lambda t: np.maximum(cos_zenith(lat, lon, t), 0.0), time)
    dni = np.where(cz > _MIN_COS_ZENITH, direct / np.maximum(cz, _MIN_COS_ZENITH), 0.0)
    return np.clip(dni, 0.0, SOLAR_CONSTANT * 1.04)


def sunshine_duration(direct, lat: float, lon: float, time: TimeRange) -> np.ndarray:
    """Seconds of sunshine in each interval (DNI above the WMO threshold)."""
    dni = direct_normal_irradiance(direct, lat, lon, time)
    sunlit = _backwards_mean(lambda t: (cos_zenith(lat, lon, t) > 0).astype(np.float64), time)
    return np.where(dni > SUNSHINE_DNI_THRESHOLD, sunlit * time.dt_seconds, 0.0)


def tilted_irradiance(
    direct,
    diffuse,
    lat: float,
    lon: float,
    time: TimeRange,
    tilt: float,
    azimuth: float,
    convert_to_instant: bool = False,
    albedo: float = 0.2,
) -> np.ndarray:
    """
    Global irradiance on a tilted panel, isotropic sky model.

    ``azimuth`` follows the panel convention: 0 = south, -90 = east, 90 = west.
    """
    direct = np.asarray(direct, dtype=np.float64)
    diffuse = np.asarray(diffuse, dtype=np.float64)
    dni = direct_normal_irradiance(direct, lat, lon, time, convert_to_instant)
    if convert_to_instant:
        factor = backwards_averaged_to_instant_factor(lat, lon, time)
        direct = direct * factor
        diffuse = diffuse * factor
        t = time.timestamps().astype(np.float64)
    else:
        t = time.timestamps().astype(np.float64) - time.dt_seconds / 2.0
    cz = np.clip(cos_zenith(lat, lon, t), -1.0, 1.0)
    sz = np.sqrt(1.0 - cz ** 2)
    beta = np.radians(tilt)
    surface_azimuth = np.radians(180.0 + azimuth)
    sun_azimuth = np.radians(solar_azimuth(lat, lon, t))
    cos_incidence = cz * np.cos(beta) + sz * np.sin(beta) * np.cos(sun_azimuth - surface_azimuth)
    ghi = direct + diffuse
    return (
        dni * np.maximum(cos_incidence, 0.0)
        + diffuse * (1.0 + np.cos(beta)) / 2.0
        + ghi * albedo * (1.0 - np.cos(beta)) / 2.0
    )
