"""
ERA5 and ERA5-Land: Hourly reanalysis sharing one variable catalogue.

ERA5-Land is the finer dataset but covers land only, so the two are usually
mixed (``era5_seamless``).  Snow depth and soil moisture depend on each
model's spin-up, which is why they are blended on their changes rather than
their values.
"""
from __future__ import annotations

from enum import Enum

import numpy as np

from models.units import SiUnit
from models.variable import Derived, Raw
from services.derived import DerivedReader, RuleTable
from services.surface_rules import register_surface_rules
from utils.meteorology import relative_humidity
from utils.weather_code import weather_code


class Era5Variable(str, Enum):
    temperature_2m = "temperature_2m"
    dew_point_2m = "dew_point_2m"
    wind_speed_10m = "wind_speed_10m"
    wind_direction_10m = "wind_direction_10m"
    wind_gusts_10m = "wind_gusts_10m"
    pressure_msl = "pressure_msl"
    cloud_cover = "cloud_cover"
    cloud_cover_low = "cloud_cover_low"
    cloud_cover_mid = "cloud_cover_mid"
    cloud_cover_high = "cloud_cover_high"
    shortwave_radiation = "shortwave_radiation"
    direct_radiation = "direct_radiation"
    precipitation = "precipitation"
    snowfall_water_equivalent = "snowfall_water_equivalent"
    snow_depth = "snow_depth"
    soil_temperature_0_to_7cm = "soil_temperature_0_to_7cm"
    soil_moisture_0_to_7cm = "soil_moisture_0_to_7cm"
    soil_moisture_7_to_28cm = "soil_moisture_7_to_28cm"

    @property
    def is_elevation_correctable(self) -> bool:
        return self in (Era5Variable.temperature_2m, Era5Variable.dew_point_2m,
                        Era5Variable.soil_temperature_0_to_7cm)

    @property
    def requires_offset_correction_for_mixing(self) -> bool:
        return self in (Era5Variable.snow_depth, Era5Variable.soil_moisture_0_to_7cm,
                        Era5Variable.soil_moisture_7_to_28cm)


class Era5VariableDerived(str, Enum):
    relative_humidity_2m = "relative_humidity_2m"
    dewpoint_2m = "dewpoint_2m"
    apparent_temperature = "apparent_temperature"
    vapour_pressure_deficit = "vapour_pressure_deficit"
    et0_fao_evapotranspiration = "et0_fao_evapotranspiration"
    wet_bulb_temperature_2m = "wet_bulb_temperature_2m"
    surface_pressure = "surface_pressure"
    snowfall = "snowfall"
    rain = "rain"
    diffuse_radiation = "diffuse_radiation"
    direct_normal_irradiance = "direct_normal_irradiance"
    shortwave_radiation_instant = "shortwave_radiation_instant"
    terrestrial_radiation = "terrestrial_radiation"
    is_day = "is_day"
    sunshine_duration = "sunshine_duration"
    weather_code = "weather_code"
    snow_depth_cm = "snow_depth_cm"

    @property
    def requires_offset_correction_for_mixing(self) -> bool:
        return self is Era5VariableDerived.snow_depth_cm


V = Era5Variable
D = Era5VariableDerived

RULES = RuleTable(Era5VariableDerived)


@RULES.register(D.relative_humidity_2m, deps=(Raw(V.temperature_2m), Raw(V.dew_point_2m)),
                unit=SiUnit.percentage)
def _relative_humidity(ctx, temperature, dewpoint):
    return relative_humidity(temperature.data, dewpoint.data)


RULES.alias(D.dewpoint_2m, Raw(V.dew_point_2m))
register_surface_rules(
    RULES, V, D,
    relative_humidity=Derived(D.relative_humidity_2m),
    dewpoint=Raw(V.dew_point_2m),
)


@RULES.register(D.rain, deps=(Raw(V.precipitation), Raw(V.snowfall_water_equivalent)))
def _rain(ctx, precipitation, swe):
    precipitation.data = np.maximum(precipitation.data - swe.data, 0.0)
    return precipitation


@RULES.register(D.weather_code, deps=(Raw(V.cloud_cover), Raw(V.precipitation), Derived(D.snowfall)),
                unit=SiUnit.wmo_code)
def _weather_code(ctx, cloud_cover, precipitation, snowfall):
    return weather_code(cloud_cover.data, precipitation.data, snowfall.data, ctx.dt_seconds)


@RULES.register(D.snow_depth_cm, deps=(Raw(V.snow_depth),), unit=SiUnit.centimetre)
def _snow_depth_cm(ctx, snow_depth):
    return snow_depth.data * 100.0


RULES.validate()


class Era5Reader(DerivedReader):
    rules = RULES
    raw = Era5Variable
    derived = Era5VariableDerived
