"""
WMO weather interpretation codes (subset used for model output).

  0 clear, 1 mainly clear, 2 partly cloudy, 3 overcast
  51/53/55 drizzle, 61/63/65 rain, 71/73/75 snowfall
  95 thunderstorm (only when CAPE is available)
"""
from __future__ import annotations

import numpy as np


def weather_code(cloud_cover, precipitation, snowfall_cm, dt_seconds: int, cape=None) -> np.ndarray:
    """
    Classify each sample.  Precipitation in mm and snowfall in cm per step;
    both are normalised to hourly rates before thresholds are applied.
    """
    hours = dt_seconds / 3600.0
    cc = np.asarray(cloud_cover, dtype=np.float64)
    rate = np.asarray(precipitation, dtype=np.float64) / hours
    snow = np.asarray(snowfall_cm, dtype=np.float64) / hours

    code = np.select([cc < 20, cc < 50, cc < 80], [0.0, 1.0, 2.0], 3.0)
    code = np.where(rate >= 0.1, np.select([rate < 0.5, rate < 1.0], [51.0, 53.0], 55.0), code)
    code = np.where(rate >= 1.3, np.select([rate < 2.5, rate < 7.6], [61.0, 63.0], 65.0), code)
    code = np.where(snow >= 0.1, np.select([snow < 0.2, snow < 0.8], [71.0, 73.0], 75.0), code)
    if cape is not None:
        code = np.where((np.asarray(cape) >= 3000) & (rate >= 1.0), 95.0, code)

    missing = np.isnan(cc) | np.isnan(rate) | np.isnan(snow)
    return np.where(missing, np.nan, code)
