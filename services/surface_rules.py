"""
Rules shared by hourly surface datasets (CERRA, BOM, ERA5).

Those datasets store the same core variables under the same names
(temperature_2m, relative_humidity_2m, wind_speed_10m, shortwave_radiation,
direct_radiation, pressure_msl, snowfall_water_equivalent), so humidity,
radiation and solar-geometry quantities are derived the same way.  Each
dataset registers what its own derived enumeration contains and adds its
dataset-specific rules (rain, cloud cover, weather code, aliases) itself.
"""
from __future__ import annotations

from enum import Enum

import numpy as np

import config
from models.units import DataAndUnit, SiUnit
from models.variable import Derived, Raw, VariableOrDerived
from services.derived import RuleTable
from utils import meteorology, zensun
from utils.grid import numeric_elevation


def register_surface_rules(
    rules: RuleTable,
    raw: type[Enum],
    derived: type[Enum],
    et0_elevation: str = "model",
    et0_dt_seconds: int | None = None,
    relative_humidity: VariableOrDerived | None = None,
    dewpoint: VariableOrDerived | None = None,
) -> None:
    """
    Register every shared rule whose name exists in ``derived``.

    et0_elevation: "model" or "target", which elevation ET0 uses
    et0_dt_seconds: fixed step for ET0 instead of the request step
    relative_humidity, dewpoint: override the inputs for datasets that store
        dewpoint instead of humidity
    """

    def member(name: str):
        return getattr(derived, name, None)

    def members(*names: str) -> list:
        return [m for m in (member(n) for n in names) if m is not None]

    T = Raw(raw.temperature_2m)
    RH = relative_humidity or Raw(raw.relative_humidity_2m)
    WIND = Raw(raw.wind_speed_10m)
    SW = Raw(raw.shortwave_radiation)
    DIRECT = Raw(raw.direct_radiation)
    DEWPOINT = dewpoint or (Derived(member("dewpoint_2m")) if member("dewpoint_2m") else None)
    DIFFUSE = Derived(member("diffuse_radiation")) if member("diffuse_radiation") else None

    # ── Humidity ─────────────────────────────────────────────────────────────

    @rules.register(*(members("dewpoint_2m", "dew_point_2m") if dewpoint is None else ()), deps=(T, RH))
    def _dewpoint(ctx, temperature, rh):
        return DataAndUnit(meteorology.dewpoint(temperature.data, rh.data), temperature.unit)

    @rules.register(*members("wet_bulb_temperature_2m"), deps=(T, RH))
    def _wet_bulb(ctx, temperature, rh):
        return DataAndUnit(meteorology.wet_bulb_temperature(temperature.data, rh.data), temperature.unit)

    @rules.register(*members("apparent_temperature"), deps=(T, RH, WIND, SW), unit=SiUnit.celsius)
    def _apparent(ctx, temperature, rh, wind, sw):
        return meteorology.apparent_temperature(temperature.data, rh.data, wind.data, sw.data)

    if DEWPOINT is not None:

        @rules.register(*members("vapour_pressure_deficit", "vapor_pressure_deficit"),
                        deps=(T, DEWPOINT), unit=SiUnit.kilopascal)
        def _vpd(ctx, temperature, dewpoint):
            return meteorology.vapour_pressure_deficit(temperature.data, dewpoint.data)

        @rules.register(*members("et0_fao_evapotranspiration"), deps=(SW, T, WIND, DEWPOINT),
                        unit=SiUnit.millimetre)
        def _et0(ctx, sw, temperature, wind, dewpoint):
            dt = et0_dt_seconds or ctx.dt_seconds
            exrad = zensun.extraterrestrial_radiation_backwards(ctx.lat, ctx.lon, ctx.time.time)
            elevation = ctx.target_elevation if et0_elevation == "target" else ctx.model_elevation
            elevation = numeric_elevation(elevation)
            if np.isnan(elevation):
                elevation = 0.0
            return meteorology.et0_evapotranspiration(
                temperature.data, wind.data, dewpoint.data, sw.data, exrad, elevation, dt
            )

    # ── Pressure and snow ────────────────────────────────────────────────────

    @rules.register(*members("surface_pressure"), deps=(T, Raw(raw.pressure_msl)))
    def _surface_pressure(ctx, temperature, pressure):
        return DataAndUnit(
            meteorology.surface_pressure(temperature.data, pressure.data, ctx.target_elevation), pressure.unit
        )

    @rules.register(*members("snowfall"), deps=(Raw(raw.snowfall_water_equivalent),), unit=SiUnit.centimetre)
    def _snowfall(ctx, swe):
        return swe.data * config.SNOW_CM_PER_MM_WATER

    # ── Radiation ────────────────────────────────────────────────────────────

    @rules.register(*members("diffuse_radiation"), deps=(SW, DIRECT))
    def _diffuse(ctx, sw, direct):
        return DataAndUnit(sw.data - direct.data, sw.unit)

    @rules.register(*members("direct_normal_irradiance"), deps=(DIRECT,), unit=SiUnit.watt_per_square_metre)
    def _dni(ctx, direct):
        return zensun.direct_normal_irradiance(direct.data, ctx.lat, ctx.lon, ctx.time.time)

    @rules.register(*members("direct_normal_irradiance_instant"), deps=(DIRECT,),
                    unit=SiUnit.watt_per_square_metre)
    def _dni_instant(ctx, direct):
        return zensun.direct_normal_irradiance(direct.data, ctx.lat, ctx.lon, ctx.time.time, convert_to_instant=True)

    def _to_instant(ctx, value):
        factor = zensun.backwards_averaged_to_instant_factor(ctx.lat, ctx.lon, ctx.time.time)
        return DataAndUnit(value.data * factor, value.unit)

    rules.register(*members("shortwave_radiation_instant"), deps=(SW,))(_to_instant)
    rules.register(*members("direct_radiation_instant"), deps=(DIRECT,))(_to_instant)
    if DIFFUSE is not None:
        rules.register(*members("diffuse_radiation_instant"), deps=(DIFFUSE,))(_to_instant)

    @rules.register(*members("terrestrial_radiation"), unit=SiUnit.watt_per_square_metre)
    def _terrestrial(ctx):
        return zensun.extraterrestrial_radiation_backwards(ctx.lat, ctx.lon, ctx.time.time)

    @rules.register(*members("terrestrial_radiation_instant"), unit=SiUnit.watt_per_square_metre)
    def _terrestrial_instant(ctx):
        return zensun.extraterrestrial_radiation_instant(ctx.lat, ctx.lon, ctx.time.time)

    @rules.register(*members("is_day"), unit=SiUnit.dimensionless_integer)
    def _is_day(ctx):
        return zensun.is_day(ctx.lat, ctx.lon, ctx.time.time)

    @rules.register(*members("sunshine_duration"), deps=(DIRECT,), unit=SiUnit.seconds)
    def _sunshine(ctx, direct):
        return zensun.sunshine_duration(direct.data, ctx.lat, ctx.lon, ctx.time.time)

    def _tilted(instant: bool):
        def compute(ctx, sw, direct):
            return zensun.tilted_irradiance(
                direct.data, sw.data - direct.data, ctx.lat, ctx.lon, ctx.time.time,
                tilt=ctx.time.tilt, azimuth=ctx.time.azimuth, convert_to_instant=instant,
            )

        return compute

    rules.register(*members("global_tilted_irradiance"), deps=(SW, DIRECT),
                   unit=SiUnit.watt_per_square_metre)(_tilted(False))
    rules.register(*members("global_tilted_irradiance_instant"), deps=(SW, DIRECT),
                   unit=SiUnit.watt_per_square_metre)(_tilted(True))
