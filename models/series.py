"""
Point requests and the series they produce.
"""
from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from models.timerange import TimeRange, TimeSettings
from models.units import DataAndUnit


@dataclass
class PointRequest:
    """One location, one dataset (or mix), a set of variable names."""

    key: str  # caller's identifier, e.g. a key into config.LOCATIONS
    lat: float
    lon: float
    domain: str  # domain name or a key into config.MIXES
    variables: list[str]
    elevation: float | None = None  # None = use the model elevation
    time: TimeSettings | None = None  # None = default window around "now"
    past_days: int = 0
    forecast_days: int | None = None
    mode: str = "land"  # nearest | land | sea
    bias_correction: bool = True
    require_complete: bool = False


@dataclass
class PointSeries:
    """Everything one request returned."""

    key: str
    domain: str
    model_lat: float
    model_lon: float
    elevation: float  # elevation the values refer to
    time: TimeRange
    columns: dict[str, DataAndUnit] = field(default_factory=dict)
    # variable → indices no source could fill (only with require_complete)
    incomplete: dict[str, list[int]] = field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return not self.incomplete

    def summary(self) -> dict[str, dict[str, float | int | str | None]]:
        """Per-column unit, sample count and range, NaN ignored."""
        out: dict[str, dict[str, float | int | str | None]] = {}
        for name, column in self.columns.items():
            valid = column.data[~np.isnan(column.data)]
            out[name] = {
                "unit": column.unit.value,
                "count": len(column),
                "missing": int(len(column) - len(valid)),
                "min": float(valid.min()) if len(valid) else None,
                "max": float(valid.max()) if len(valid) else None,
            }
        return out
