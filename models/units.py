from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np


class SiUnit(str, Enum):
    """Physical units attached to every series."""

    celsius = "celsius"
    fahrenheit = "fahrenheit"
    kelvin = "kelvin"
    percentage = "percentage"
    fraction = "fraction"
    millimetre = "millimetre"
    centimetre = "centimetre"
    metre = "metre"
    metre_per_second = "metre_per_second"
    km_per_hour = "km_per_hour"
    degree_direction = "degree_direction"
    pascal = "pascal"
    hectopascal = "hectopascal"
    kilopascal = "kilopascal"
    watt_per_square_metre = "watt_per_square_metre"
    megajoule_per_square_metre = "megajoule_per_square_metre"
    cubic_metre_per_cubic_metre = "cubic_metre_per_cubic_metre"
    seconds = "seconds"
    wmo_code = "wmo_code"
    dimensionless = "dimensionless"
    dimensionless_integer = "dimensionless_integer"
    gdd_celsius = "gdd_celsius"
    microgram_per_cubic_metre = "microgram_per_cubic_metre"
    grains_per_cubic_metre = "grains_per_cubic_metre"
    european_aqi = "european_aqi"


@dataclass
class DataAndUnit:
    """
    A series of float samples aligned 1:1 with a time range.

    NaN marks a missing sample.  The array is owned by whoever received the
    object; anything handed out from a cache is a copy.
    """

    data: np.ndarray
    unit: SiUnit

    def __post_init__(self) -> None:
        self.data = np.asarray(self.data, dtype=np.float64)

    def copy(self) -> DataAndUnit:
        return DataAndUnit(self.data.copy(), self.unit)

    @property
    def has_missing(self) -> bool:
        return bool(np.isnan(self.data).any())

    def __len__(self) -> int:
        return len(self.data)
