"""
BOM ACCESS-G: Australian Bureau of Meteorology global model, hourly.

Precipitation is split into large-scale rain, showers and snow; soil layers
are stored at the model's native depths and exposed under the depth names
other datasets use.
"""
from __future__ import annotations

from enum import Enum

import numpy as np

from models.variable import Raw
from services.derived import DerivedReader, RuleTable
from services.surface_rules import register_surface_rules


class BomVariable(str, Enum):
    temperature_2m = "temperature_2m"
    relative_humidity_2m = "relative_humidity_2m"
    pressure_msl = "pressure_msl"
    wind_speed_10m = "wind_speed_10m"
    wind_speed_40m = "wind_speed_40m"
    wind_speed_80m = "wind_speed_80m"
    wind_speed_120m = "wind_speed_120m"
    wind_direction_10m = "wind_direction_10m"
    wind_direction_40m = "wind_direction_40m"
    wind_direction_80m = "wind_direction_80m"
    wind_direction_120m = "wind_direction_120m"
    wind_gusts_10m = "wind_gusts_10m"
    cloud_cover = "cloud_cover"
    cloud_cover_low = "cloud_cover_low"
    cloud_cover_mid = "cloud_cover_mid"
    cloud_cover_high = "cloud_cover_high"
    shortwave_radiation = "shortwave_radiation"
    direct_radiation = "direct_radiation"
    precipitation = "precipitation"
    showers = "showers"
    snowfall_water_equivalent = "snowfall_water_equivalent"
    weather_code = "weather_code"
    cape = "cape"
    soil_temperature_0_to_10cm = "soil_temperature_0_to_10cm"
    soil_temperature_10_to_35cm = "soil_temperature_10_to_35cm"
    soil_temperature_35_to_100cm = "soil_temperature_35_to_100cm"
    soil_temperature_100_to_300cm = "soil_temperature_100_to_300cm"
    soil_moisture_0_to_10cm = "soil_moisture_0_to_10cm"
    soil_moisture_10_to_35cm = "soil_moisture_10_to_35cm"
    soil_moisture_35_to_100cm = "soil_moisture_35_to_100cm"
    soil_moisture_100_to_300cm = "soil_moisture_100_to_300cm"

    @property
    def is_elevation_correctable(self) -> bool:
        return self in (BomVariable.temperature_2m, BomVariable.soil_temperature_0_to_10cm)

    @property
    def requires_offset_correction_for_mixing(self) -> bool:
        return self.value.startswith("soil_moisture")


class BomVariableDerived(str, Enum):
    apparent_temperature = "apparent_temperature"
    relativehumidity_2m = "relativehumidity_2m"
    dewpoint_2m = "dewpoint_2m"
    dew_point_2m = "dew_point_2m"
    windspeed_10m = "windspeed_10m"
    windspeed_40m = "windspeed_40m"
    windspeed_80m = "windspeed_80m"
    windspeed_120m = "windspeed_120m"
    winddirection_10m = "winddirection_10m"
    winddirection_40m = "winddirection_40m"
    winddirection_80m = "winddirection_80m"
    winddirection_120m = "winddirection_120m"
    direct_normal_irradiance = "direct_normal_irradiance"
    direct_normal_irradiance_instant = "direct_normal_irradiance_instant"
    direct_radiation_instant = "direct_radiation_instant"
    diffuse_radiation_instant = "diffuse_radiation_instant"
    diffuse_radiation = "diffuse_radiation"
    shortwave_radiation_instant = "shortwave_radiation_instant"
    global_tilted_irradiance = "global_tilted_irradiance"
    global_tilted_irradiance_instant = "global_tilted_irradiance_instant"
    et0_fao_evapotranspiration = "et0_fao_evapotranspiration"
    vapour_pressure_deficit = "vapour_pressure_deficit"
    vapor_pressure_deficit = "vapor_pressure_deficit"
    surface_pressure = "surface_pressure"
    terrestrial_radiation = "terrestrial_radiation"
    terrestrial_radiation_instant = "terrestrial_radiation_instant"
    weathercode = "weathercode"
    is_day = "is_day"
    rain = "rain"
    snowfall = "snowfall"
    wet_bulb_temperature_2m = "wet_bulb_temperature_2m"
    cloudcover = "cloudcover"
    cloudcover_low = "cloudcover_low"
    cloudcover_mid = "cloudcover_mid"
    cloudcover_high = "cloudcover_high"
    windgusts_10m = "windgusts_10m"
    sunshine_duration = "sunshine_duration"
    soil_temperature_10_to_45cm = "soil_temperature_10_to_45cm"
    soil_temperature_40_to_100cm = "soil_temperature_40_to_100cm"
    soil_temperature_100_to_200cm = "soil_temperature_100_to_200cm"
    soil_moisture_10_to_40cm = "soil_moisture_10_to_40cm"
    soil_moisture_40_to_100cm = "soil_moisture_40_to_100cm"
    soil_moisture_100_to_200cm = "soil_moisture_100_to_200cm"


V = BomVariable
D = BomVariableDerived

RULES = RuleTable(BomVariableDerived)
# ACCESS-G radiation is hourly; ET0 is evaluated at the requested elevation
register_surface_rules(RULES, V, D, et0_elevation="target", et0_dt_seconds=3600)


@RULES.register(D.rain, deps=(Raw(V.precipitation), Raw(V.snowfall_water_equivalent), Raw(V.showers)))
def _rain(ctx, precipitation, swe, showers):
    precipitation.data = np.maximum(precipitation.data - swe.data - showers.data, 0.0)
    return precipitation


for _alias, _target in [
    (D.relativehumidity_2m, V.relative_humidity_2m),
    (D.windspeed_10m, V.wind_speed_10m),
    (D.windspeed_40m, V.wind_speed_40m),
    (D.windspeed_80m, V.wind_speed_80m),
    (D.windspeed_120m, V.wind_speed_120m),
    (D.winddirection_10m, V.wind_direction_10m),
    (D.winddirection_40m, V.wind_direction_40m),
    (D.winddirection_80m, V.wind_direction_80m),
    (D.winddirection_120m, V.wind_direction_120m),
    (D.weathercode, V.weather_code),
    (D.cloudcover, V.cloud_cover),
    (D.cloudcover_low, V.cloud_cover_low),
    (D.cloudcover_mid, V.cloud_cover_mid),
    (D.cloudcover_high, V.cloud_cover_high),
    (D.windgusts_10m, V.wind_gusts_10m),
    (D.soil_temperature_10_to_45cm, V.soil_temperature_10_to_35cm),
    (D.soil_temperature_40_to_100cm, V.soil_temperature_35_to_100cm),
    (D.soil_temperature_100_to_200cm, V.soil_temperature_100_to_300cm),
    (D.soil_moisture_10_to_40cm, V.soil_moisture_10_to_35cm),
    (D.soil_moisture_40_to_100cm, V.soil_moisture_35_to_100cm),
    (D.soil_moisture_100_to_200cm, V.soil_moisture_100_to_300cm),
]:
    RULES.alias(_alias, Raw(_target))

RULES.validate()


class BomReader(DerivedReader):
    rules = RULES
    raw = BomVariable
    derived = BomVariableDerived
