"""
CERRA: Copernicus European Regional ReAnalysis, 5.5 km, 3-hourly.
"""
from __future__ import annotations

from enum import Enum

import numpy as np

from models.units import SiUnit
from models.variable import Derived, Raw
from services.derived import DerivedReader, RuleTable
from services.surface_rules import register_surface_rules
from utils.meteorology import cloud_cover_total
from utils.weather_code import weather_code


class CerraVariable(str, Enum):
    temperature_2m = "temperature_2m"
    wind_speed_10m = "wind_speed_10m"
    wind_direction_10m = "wind_direction_10m"
    wind_speed_100m = "wind_speed_100m"
    wind_direction_100m = "wind_direction_100m"
    wind_gusts_10m = "wind_gusts_10m"
    relative_humidity_2m = "relative_humidity_2m"
    cloud_cover_low = "cloud_cover_low"
    cloud_cover_mid = "cloud_cover_mid"
    cloud_cover_high = "cloud_cover_high"
    pressure_msl = "pressure_msl"
    snowfall_water_equivalent = "snowfall_water_equivalent"
    shortwave_radiation = "shortwave_radiation"
    precipitation = "precipitation"
    direct_radiation = "direct_radiation"
    albedo = "albedo"
    snow_depth = "snow_depth"
    snow_depth_water_equivalent = "snow_depth_water_equivalent"

    @property
    def is_elevation_correctable(self) -> bool:
        return self is CerraVariable.temperature_2m

    @property
    def requires_offset_correction_for_mixing(self) -> bool:
        return False


class CerraVariableDerived(str, Enum):
    apparent_temperature = "apparent_temperature"
    dewpoint_2m = "dewpoint_2m"
    dew_point_2m = "dew_point_2m"
    vapor_pressure_deficit = "vapor_pressure_deficit"
    vapour_pressure_deficit = "vapour_pressure_deficit"
    diffuse_radiation = "diffuse_radiation"
    surface_pressure = "surface_pressure"
    snowfall = "snowfall"
    rain = "rain"
    et0_fao_evapotranspiration = "et0_fao_evapotranspiration"
    cloudcover = "cloudcover"
    cloud_cover = "cloud_cover"
    direct_normal_irradiance = "direct_normal_irradiance"
    weathercode = "weathercode"
    weather_code = "weather_code"
    is_day = "is_day"
    terrestrial_radiation = "terrestrial_radiation"
    terrestrial_radiation_instant = "terrestrial_radiation_instant"
    shortwave_radiation_instant = "shortwave_radiation_instant"
    diffuse_radiation_instant = "diffuse_radiation_instant"
    direct_radiation_instant = "direct_radiation_instant"
    direct_normal_irradiance_instant = "direct_normal_irradiance_instant"
    global_tilted_irradiance = "global_tilted_irradiance"
    global_tilted_irradiance_instant = "global_tilted_irradiance_instant"
    wet_bulb_temperature_2m = "wet_bulb_temperature_2m"
    windspeed_10m = "windspeed_10m"
    winddirection_10m = "winddirection_10m"
    windspeed_100m = "windspeed_100m"
    winddirection_100m = "winddirection_100m"
    windgusts_10m = "windgusts_10m"
    relativehumidity_2m = "relativehumidity_2m"
    cloudcover_low = "cloudcover_low"
    cloudcover_mid = "cloudcover_mid"
    cloudcover_high = "cloudcover_high"
    sunshine_duration = "sunshine_duration"


V = CerraVariable
D = CerraVariableDerived

RULES = RuleTable(CerraVariableDerived)
register_surface_rules(RULES, V, D, et0_elevation="model")


@RULES.register(D.rain, deps=(Raw(V.precipitation), Raw(V.snowfall_water_equivalent)))
def _rain(ctx, precipitation, swe):
    precipitation.data = np.maximum(precipitation.data - swe.data, 0.0)
    return precipitation


@RULES.register(D.cloud_cover, D.cloudcover,
                deps=(Raw(V.cloud_cover_low), Raw(V.cloud_cover_mid), Raw(V.cloud_cover_high)),
                unit=SiUnit.percentage)
def _cloud_cover(ctx, low, mid, high):
    return cloud_cover_total(low.data, mid.data, high.data)


@RULES.register(D.weather_code, D.weathercode,
                deps=(Derived(D.cloud_cover), Raw(V.precipitation), Derived(D.snowfall)),
                unit=SiUnit.wmo_code)
def _weather_code(ctx, cloud_cover, precipitation, snowfall):
    return weather_code(cloud_cover.data, precipitation.data, snowfall.data, ctx.dt_seconds)


for _alias, _target in [
    (D.windspeed_10m, V.wind_speed_10m),
    (D.winddirection_10m, V.wind_direction_10m),
    (D.windspeed_100m, V.wind_speed_100m),
    (D.winddirection_100m, V.wind_direction_100m),
    (D.windgusts_10m, V.wind_gusts_10m),
    (D.relativehumidity_2m, V.relative_humidity_2m),
    (D.cloudcover_low, V.cloud_cover_low),
    (D.cloudcover_mid, V.cloud_cover_mid),
    (D.cloudcover_high, V.cloud_cover_high),
]:
    RULES.alias(_alias, Raw(_target))

RULES.validate()


class CerraReader(DerivedReader):
    rules = RULES
    raw = CerraVariable
    derived = CerraVariableDerived
