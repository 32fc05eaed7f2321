"""
Vectorised meteorological formulas.

All functions take and return numpy arrays (scalars work too) and propagate
NaN.  Temperatures are in °C, relative humidity in %, wind in m/s, pressure
in hPa unless a name says otherwise.

References:
  - Magnus dewpoint (Alduchov & Eskridge 1996 coefficients)
  - Stull (2011) wet-bulb approximation
  - FAO-56 Penman-Monteith reference evapotranspiration (Allen et al. 1998)
  - Steadman apparent temperature as used by the Australian BoM
"""
from __future__ import annotations

import numpy as np

# Magnus coefficients
_MAGNUS_A = 17.625
_MAGNUS_B = 243.04

# Stefan-Boltzmann constant in MJ K^-4 m^-2 per day
_SIGMA_DAY = 4.903e-9


def dewpoint(temperature, relative_humidity):
    rh = np.clip(np.asarray(relative_humidity, dtype=np.float64), 0.01, 100.0)
    t = np.asarray(temperature, dtype=np.float64)
    alpha = np.log(rh / 100.0) + _MAGNUS_A * t / (_MAGNUS_B + t)
    return _MAGNUS_B * alpha / (_MAGNUS_A - alpha)


def relative_humidity(temperature, dewpoint_temperature):
    t = np.asarray(temperature, dtype=np.float64)
    td = np.asarray(dewpoint_temperature, dtype=np.float64)
    rh = 100.0 * np.exp(_MAGNUS_A * td / (_MAGNUS_B + td) - _MAGNUS_A * t / (_MAGNUS_B + t))
    return np.minimum(rh, 100.0)


def saturation_vapour_pressure(temperature):
    """In kPa (FAO-56 eq. 11)."""
    t = np.asarray(temperature, dtype=np.float64)
    return 0.6108 * np.exp(17.27 * t / (t + 237.3))


def vapour_pressure_deficit(temperature, dewpoint_temperature):
    """In kPa, never negative."""
    return np.maximum(
        saturation_vapour_pressure(temperature) - saturation_vapour_pressure(dewpoint_temperature), 0.0
    )


def wet_bulb_temperature(temperature, relative_humidity):
    """Stull (2011), valid for 5-99 % RH and -20..50 °C."""
    t = np.asarray(temperature, dtype=np.float64)
    rh = np.clip(np.asarray(relative_humidity, dtype=np.float64), 0.0, 100.0)
    return (
        t * np.arctan(0.151977 * np.sqrt(rh + 8.313659))
        + np.arctan(t + rh)
        - np.arctan(rh - 1.676331)
        + 0.00391838 * rh ** 1.5 * np.arctan(0.023101 * rh)
        - 4.686035
    )


def apparent_temperature(temperature, relative_humidity, wind_speed, shortwave_radiation=None):
    """
    Steadman apparent temperature.  Without radiation the shade formula is
    used; with radiation a tenth of the global radiation is treated as
    absorbed by the body.
    """
    t = np.asarray(temperature, dtype=np.float64)
    ws = np.asarray(wind_speed, dtype=np.float64)
    e = np.asarray(relative_humidity, dtype=np.float64) / 100.0 * 6.105 * np.exp(17.27 * t / (237.7 + t))
    if shortwave_radiation is None:
        return t + 0.33 * e - 0.70 * ws - 4.00
    q = 0.1 * np.maximum(np.asarray(shortwave_radiation, dtype=np.float64), 0.0)
    return t + 0.348 * e - 0.70 * ws + 0.70 * q / (ws + 10.0) - 4.25


def surface_pressure(temperature, pressure_msl, elevation):
    """Reduce mean-sea-level pressure to the given elevation (same unit as ``pressure_msl``)."""
    t = np.asarray(temperature, dtype=np.float64)
    h = np.asarray(elevation, dtype=np.float64)
    return np.asarray(pressure_msl, dtype=np.float64) * (
        1.0 - 0.0065 * h / (t + 0.0065 * h + 273.15)
    ) ** 5.257


def cloud_cover_total(low, mid, high):
    """Random overlap of three layers, all in %."""
    l = np.clip(np.asarray(low, dtype=np.float64), 0, 100) / 100.0
    m = np.clip(np.asarray(mid, dtype=np.float64), 0, 100) / 100.0
    h = np.clip(np.asarray(high, dtype=np.float64), 0, 100) / 100.0
    return 100.0 * (1.0 - (1.0 - l) * (1.0 - m) * (1.0 - h))


def wind_scale_factor(from_height: float, to_height: float) -> float:
    """Logarithmic profile factor (FAO-56 eq. 47 generalised)."""
    return float(np.log(67.8 * to_height - 5.42) / np.log(67.8 * from_height - 5.42))


def _net_longwave(tk4, ea, rs, rso):
    ratio = np.clip(np.where(rso > 0, rs / np.where(rso > 0, rso, 1.0), 0.5), 0.25, 1.0)
    return tk4 * (0.34 - 0.14 * np.sqrt(np.maximum(ea, 0.0))) * (1.35 * ratio - 0.35)


def et0_evapotranspiration(
    temperature,
    wind_speed_10m,
    dewpoint_temperature,
    shortwave_radiation,
    extraterrestrial_radiation,
    elevation: float,
    dt_seconds: int,
):
    """
    FAO-56 Penman-Monteith for sub-daily steps.

    Radiation in W/m² averaged over the step, result in mm per step.
    """
    t = np.asarray(temperature, dtype=np.float64)
    hours = dt_seconds / 3600.0
    rs = np.maximum(np.asarray(shortwave_radiation, dtype=np.float64), 0.0) * dt_seconds / 1e6
    ra = np.maximum(np.asarray(extraterrestrial_radiation, dtype=np.float64), 0.0) * dt_seconds / 1e6
    rso = (0.75 + 2e-5 * elevation) * ra
    es = saturation_vapour_pressure(t)
    ea = saturation_vapour_pressure(dewpoint_temperature)
    tk4 = _SIGMA_DAY / 24.0 * hours * (t + 273.16) ** 4
    rn = 0.77 * rs - _net_longwave(tk4, ea, rs, rso)
    g = np.where(rs > 0, 0.1, 0.5) * rn
    delta = 4098.0 * es / (t + 237.3) ** 2
    pressure = 101.3 * ((293.0 - 0.0065 * elevation) / 293.0) ** 5.26
    gamma = 0.000665 * pressure
    u2 = np.asarray(wind_speed_10m, dtype=np.float64) * wind_scale_factor(10, 2)
    numerator = 0.408 * delta * (rn - g) + gamma * 37.0 * hours / (t + 273.0) * u2 * (es - ea)
    return np.maximum(numerator / (delta + gamma * (1.0 + 0.34 * u2)), 0.0)


def _daily_actual_vapour_pressure(temperature_max, temperature_min, rh_max=None, rh_min=None, rh_mean=None):
    es_max = saturation_vapour_pressure(temperature_max)
    es_min = saturation_vapour_pressure(temperature_min)
    if rh_max is not None and rh_min is not None:
        return (es_min * np.asarray(rh_max) / 100.0 + es_max * np.asarray(rh_min) / 100.0) / 2.0
    return (es_max + es_min) / 2.0 * np.asarray(rh_mean) / 100.0


def et0_evapotranspiration_daily(
    temperature_max,
    temperature_min,
    temperature_mean,
    wind_speed_10m_mean,
    shortwave_radiation_sum,
    extraterrestrial_radiation_sum,
    elevation: float,
    rh_max=None,
    rh_min=None,
    rh_mean=None,
):
    """FAO-56 daily Penman-Monteith.  Radiation sums in MJ/m², result in mm/day."""
    tmax = np.asarray(temperature_max, dtype=np.float64)
    tmin = np.asarray(temperature_min, dtype=np.float64)
    tmean = np.asarray(temperature_mean, dtype=np.float64)
    rs = np.maximum(np.asarray(shortwave_radiation_sum, dtype=np.float64), 0.0)
    ra = np.maximum(np.asarray(extraterrestrial_radiation_sum, dtype=np.float64), 0.0)
    rso = (0.75 + 2e-5 * elevation) * ra
    es = (saturation_vapour_pressure(tmax) + saturation_vapour_pressure(tmin)) / 2.0
    ea = _daily_actual_vapour_pressure(tmax, tmin, rh_max, rh_min, rh_mean)
    tk4 = _SIGMA_DAY * ((tmax + 273.16) ** 4 + (tmin + 273.16) ** 4) / 2.0
    rn = 0.77 * rs - _net_longwave(tk4, ea, rs, rso)
    delta = 4098.0 * saturation_vapour_pressure(tmean) / (tmean + 237.3) ** 2
    pressure = 101.3 * ((293.0 - 0.0065 * elevation) / 293.0) ** 5.26
    gamma = 0.000665 * pressure
    u2 = np.asarray(wind_speed_10m_mean, dtype=np.float64) * wind_scale_factor(10, 2)
    numerator = 0.408 * delta * rn + gamma * 900.0 / (tmean + 273.0) * u2 * (es - ea)
    return np.maximum(numerator / (delta + gamma * (1.0 + 0.34 * u2)), 0.0)


def vapour_pressure_deficit_daily(temperature_max, temperature_min, rh_max=None, rh_min=None, rh_mean=None):
    es = (saturation_vapour_pressure(temperature_max) + saturation_vapour_pressure(temperature_min)) / 2.0
    ea = _daily_actual_vapour_pressure(temperature_max, temperature_min, rh_max, rh_min, rh_mean)
    return np.maximum(es - ea, 0.0)


def dewpoint_daily(temperature_max, temperature_min, relative_humidity):
    """Dewpoint from the daily mean vapour pressure implied by one humidity value."""
    ea = _daily_actual_vapour_pressure(temperature_max, temperature_min, rh_mean=relative_humidity)
    x = np.log(np.maximum(ea, 1e-6) / 0.6108)
    return 237.3 * x / (17.27 - x)


def growing_degree_days(temperature_max, temperature_min, base: float = 0.0, limit: float = 50.0):
    mean = (np.asarray(temperature_max, dtype=np.float64) + np.asarray(temperature_min, dtype=np.float64)) / 2.0
    return np.maximum(np.minimum(mean, limit) - base, 0.0)


def trailing_mean(values, window: int):
    """
    Mean over the current and ``window - 1`` previous samples.  The first
    samples average over whatever history exists.
    """
    v = np.asarray(values, dtype=np.float64)
    if window <= 1 or len(v) == 0:
        return v.copy()
    cumsum = np.cumsum(np.insert(v, 0, 0.0))
    out = np.empty_like(v)
    for i in range(len(v)):
        lo = max(0, i + 1 - window)
        out[i] = (cumsum[i + 1] - cumsum[lo]) / (i + 1 - lo)
    return out
