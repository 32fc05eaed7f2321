"""
CMIP6 HighResMIP climate models, daily, 1950-2050.

Climate model output has systematic biases, so values are corrected toward
a reference climatology before anything is derived from them.  The stack
has three layers:

  Cmip6ReaderPreBiasCorrection   raw daily variables plus quantities that
                                 are themselves bias corrected (ET0, VPD,
                                 soil estimates, gusts)
  BiasCorrector                  seasonal correction of both of the above
  Cmip6ReaderPostBiasCorrected   quantities computed from corrected inputs
                                 (rain, snowfall, dewpoint, degree days)

Requests against the outer layer name variables as ``Raw(Raw(x))``,
``Raw(Derived(x))`` or ``Derived(x)``.
"""
from __future__ import annotations

import math
from enum import Enum
from typing import Any

import numpy as np

import config
from models.domain import CMIP6_DOMAINS, Domain
from models.errors import UnknownVariableError
from models.units import DataAndUnit, SiUnit
from models.variable import BiasCorrectionType, Derived, Raw, VariableOrDerived
from services.bias_correction import BiasCorrector
from services.derived import DerivedReader, RuleTable
from services.reader import GenericReader, locate
from utils import meteorology, zensun
from utils.grid import numeric_elevation
from utils.storage_client import Storage


class Cmip6Variable(str, Enum):
    pressure_msl_mean = "pressure_msl_mean"
    temperature_2m_min = "temperature_2m_min"
    temperature_2m_max = "temperature_2m_max"
    temperature_2m_mean = "temperature_2m_mean"
    cloud_cover_mean = "cloud_cover_mean"
    precipitation_sum = "precipitation_sum"
    snowfall_water_equivalent_sum = "snowfall_water_equivalent_sum"
    relative_humidity_2m_min = "relative_humidity_2m_min"
    relative_humidity_2m_max = "relative_humidity_2m_max"
    relative_humidity_2m_mean = "relative_humidity_2m_mean"
    wind_speed_10m_mean = "wind_speed_10m_mean"
    wind_speed_10m_max = "wind_speed_10m_max"
    shortwave_radiation_sum = "shortwave_radiation_sum"
    soil_moisture_0_to_10cm_mean = "soil_moisture_0_to_10cm_mean"

    @property
    def bias_correction_type(self) -> BiasCorrectionType:
        if self in (Cmip6Variable.cloud_cover_mean, Cmip6Variable.relative_humidity_2m_min,
                    Cmip6Variable.relative_humidity_2m_max, Cmip6Variable.relative_humidity_2m_mean):
            return BiasCorrectionType.relative_change(maximum=100)
        if self in (Cmip6Variable.precipitation_sum, Cmip6Variable.snowfall_water_equivalent_sum,
                    Cmip6Variable.wind_speed_10m_mean, Cmip6Variable.wind_speed_10m_max,
                    Cmip6Variable.shortwave_radiation_sum):
            return BiasCorrectionType.relative_change()
        if self is Cmip6Variable.soil_moisture_0_to_10cm_mean:
            return BiasCorrectionType.absolute_change(bounds=(0, 10e9))
        return BiasCorrectionType.absolute_change()

    @property
    def is_elevation_correctable(self) -> bool:
        return self in (Cmip6Variable.temperature_2m_min, Cmip6Variable.temperature_2m_max,
                        Cmip6Variable.temperature_2m_mean)

    @property
    def requires_offset_correction_for_mixing(self) -> bool:
        return False


class Cmip6VariableDerivedBiasCorrected(str, Enum):
    """Derived before correction; corrected like raw variables afterwards."""

    et0_fao_evapotranspiration_sum = "et0_fao_evapotranspiration_sum"
    soil_moisture_0_to_100cm_mean = "soil_moisture_0_to_100cm_mean"
    soil_moisture_0_to_7cm_mean = "soil_moisture_0_to_7cm_mean"
    soil_moisture_7_to_28cm_mean = "soil_moisture_7_to_28cm_mean"
    soil_moisture_28_to_100cm_mean = "soil_moisture_28_to_100cm_mean"
    soil_temperature_0_to_100cm_mean = "soil_temperature_0_to_100cm_mean"
    soil_temperature_0_to_7cm_mean = "soil_temperature_0_to_7cm_mean"
    soil_temperature_7_to_28cm_mean = "soil_temperature_7_to_28cm_mean"
    soil_temperature_28_to_100cm_mean = "soil_temperature_28_to_100cm_mean"
    vapour_pressure_deficit_max = "vapour_pressure_deficit_max"
    wind_gusts_10m_mean = "wind_gusts_10m_mean"
    wind_gusts_10m_max = "wind_gusts_10m_max"

    @property
    def bias_correction_type(self) -> BiasCorrectionType:
        if self.value.startswith("soil_moisture"):
            return BiasCorrectionType.absolute_change(bounds=(0, 10e9))
        if self.value.startswith("soil_temperature"):
            return BiasCorrectionType.absolute_change()
        return BiasCorrectionType.relative_change()

    @property
    def requires_offset_correction_for_mixing(self) -> bool:
        return False


class Cmip6VariableDerivedPostBiasCorrection(str, Enum):
    """Computed from already corrected inputs."""

    snowfall_sum = "snowfall_sum"
    rain_sum = "rain_sum"
    dewpoint_2m_max = "dewpoint_2m_max"
    dewpoint_2m_min = "dewpoint_2m_min"
    dewpoint_2m_mean = "dewpoint_2m_mean"
    dew_point_2m_max = "dew_point_2m_max"
    dew_point_2m_min = "dew_point_2m_min"
    dew_point_2m_mean = "dew_point_2m_mean"
    growing_degree_days_base_0_limit_50 = "growing_degree_days_base_0_limit_50"
    daylight_duration = "daylight_duration"
    windspeed_2m_max = "windspeed_2m_max"
    windspeed_2m_mean = "windspeed_2m_mean"
    wind_speed_2m_max = "wind_speed_2m_max"
    wind_speed_2m_mean = "wind_speed_2m_mean"
    windspeed_10m_max = "windspeed_10m_max"
    windspeed_10m_mean = "windspeed_10m_mean"
    windgusts_10m_mean = "windgusts_10m_mean"
    windgusts_10m_max = "windgusts_10m_max"
    vapor_pressure_deficit_max = "vapor_pressure_deficit_max"

    @property
    def requires_offset_correction_for_mixing(self) -> bool:
        return False


V = Cmip6Variable
B = Cmip6VariableDerivedBiasCorrected
P = Cmip6VariableDerivedPostBiasCorrection


# ── Pre-correction layer ─────────────────────────────────────────────────────

PRE_RULES = RuleTable(Cmip6VariableDerivedBiasCorrected)


def _humidity_deps(domain: Domain) -> tuple[VariableOrDerived, ...]:
    if domain.has_relative_humidity_min_max:
        return (Raw(V.relative_humidity_2m_max), Raw(V.relative_humidity_2m_min))
    return (Raw(V.relative_humidity_2m_mean),)


def _humidity_kwargs(ctx, humidity) -> dict[str, Any]:
    if ctx.domain.has_relative_humidity_min_max:
        rh_max, rh_min = humidity
        return {"rh_max": rh_max.data, "rh_min": rh_min.data}
    return {"rh_mean": humidity[0].data}


_ET0_INPUTS = (
    Raw(V.temperature_2m_max), Raw(V.temperature_2m_min), Raw(V.temperature_2m_mean),
    Raw(V.wind_speed_10m_mean), Raw(V.shortwave_radiation_sum),
)


@PRE_RULES.register(B.et0_fao_evapotranspiration_sum,
                    deps=lambda domain: _ET0_INPUTS + _humidity_deps(domain),
                    unit=SiUnit.millimetre)
def _et0_sum(ctx, tmax, tmin, tmean, wind, radiation, *humidity):
    elevation = ctx.target_elevation
    if math.isnan(elevation):
        elevation = numeric_elevation(ctx.model_elevation)
    if math.isnan(elevation):
        elevation = 0.0
    exrad = zensun.extraterrestrial_radiation_daily_sum(ctx.lat, ctx.lon, ctx.time.time)
    return meteorology.et0_evapotranspiration_daily(
        tmax.data, tmin.data, tmean.data, wind.data, radiation.data, exrad, elevation,
        **_humidity_kwargs(ctx, humidity),
    )


@PRE_RULES.register(B.vapour_pressure_deficit_max,
                    deps=lambda domain: (Raw(V.temperature_2m_max), Raw(V.temperature_2m_min))
                    + _humidity_deps(domain),
                    unit=SiUnit.kilopascal)
def _vpd_max(ctx, tmax, tmin, *humidity):
    return meteorology.vapour_pressure_deficit_daily(tmax.data, tmin.data, **_humidity_kwargs(ctx, humidity))


# Deeper soil layers follow the surface with a lag; estimated by trailing
# means over 6 and 52 days of the 0-10 cm layer (4, 6 and 52 days of 2 m
# temperature for soil temperature).

def _soil_moisture_layers(sm):
    sm7_28 = meteorology.trailing_mean(sm, 6)
    sm28_100 = meteorology.trailing_mean(sm7_28, 52)
    return sm7_28, sm28_100


def _soil_temperature_layers(t2m):
    st0_7 = meteorology.trailing_mean(t2m, 4)
    st7_28 = meteorology.trailing_mean(st0_7, 6)
    st28_100 = meteorology.trailing_mean(st7_28, 52)
    return st0_7, st7_28, st28_100


SOIL_MOISTURE = Raw(V.soil_moisture_0_to_10cm_mean)
T2M_MEAN = Raw(V.temperature_2m_mean)


@PRE_RULES.register(B.soil_moisture_0_to_100cm_mean, deps=(SOIL_MOISTURE,))
def _sm_0_100(ctx, sm):
    sm7_28, sm28_100 = _soil_moisture_layers(sm.data)
    return DataAndUnit(sm.data * 0.1 + sm7_28 * (0.28 - 0.1) + sm28_100 * (1 - 0.28), sm.unit)


PRE_RULES.alias(B.soil_moisture_0_to_7cm_mean, SOIL_MOISTURE)


@PRE_RULES.register(B.soil_moisture_7_to_28cm_mean, deps=(SOIL_MOISTURE,))
def _sm_7_28(ctx, sm):
    return DataAndUnit(_soil_moisture_layers(sm.data)[0], sm.unit)


@PRE_RULES.register(B.soil_moisture_28_to_100cm_mean, deps=(SOIL_MOISTURE,))
def _sm_28_100(ctx, sm):
    return DataAndUnit(_soil_moisture_layers(sm.data)[1], sm.unit)


@PRE_RULES.register(B.soil_temperature_0_to_100cm_mean, deps=(T2M_MEAN,))
def _st_0_100(ctx, t2m):
    st0_7, st7_28, st28_100 = _soil_temperature_layers(t2m.data)
    return DataAndUnit(st0_7 * 0.07 + st7_28 * (0.28 - 0.07) + st28_100 * (1 - 0.28), t2m.unit)


@PRE_RULES.register(B.soil_temperature_0_to_7cm_mean, deps=(T2M_MEAN,))
def _st_0_7(ctx, t2m):
    return DataAndUnit(_soil_temperature_layers(t2m.data)[0], t2m.unit)


@PRE_RULES.register(B.soil_temperature_7_to_28cm_mean, deps=(T2M_MEAN,))
def _st_7_28(ctx, t2m):
    return DataAndUnit(_soil_temperature_layers(t2m.data)[1], t2m.unit)


@PRE_RULES.register(B.soil_temperature_28_to_100cm_mean, deps=(T2M_MEAN,))
def _st_28_100(ctx, t2m):
    return DataAndUnit(_soil_temperature_layers(t2m.data)[2], t2m.unit)


# Models do not store gusts; daily wind speed stands in and gets its own correction
PRE_RULES.alias(B.wind_gusts_10m_mean, Raw(V.wind_speed_10m_mean))
PRE_RULES.alias(B.wind_gusts_10m_max, Raw(V.wind_speed_10m_max))

PRE_RULES.validate(CMIP6_DOMAINS)


class Cmip6ReaderPreBiasCorrection(DerivedReader):
    rules = PRE_RULES
    raw = Cmip6Variable
    derived = Cmip6VariableDerivedBiasCorrected


# ── Post-correction layer ────────────────────────────────────────────────────

POST_RULES = RuleTable(Cmip6VariableDerivedPostBiasCorrection)


def _corrected(variable: Cmip6Variable | Cmip6VariableDerivedBiasCorrected) -> Raw:
    inner = Raw(variable) if isinstance(variable, Cmip6Variable) else Derived(variable)
    return Raw(inner)


TMAX = _corrected(V.temperature_2m_max)
TMIN = _corrected(V.temperature_2m_min)


@POST_RULES.register(P.snowfall_sum, deps=(_corrected(V.snowfall_water_equivalent_sum),),
                     unit=SiUnit.centimetre)
def _snowfall_sum(ctx, swe):
    return swe.data * config.SNOW_CM_PER_MM_WATER


@POST_RULES.register(P.rain_sum, deps=(_corrected(V.precipitation_sum), _corrected(V.snowfall_water_equivalent_sum)))
def _rain_sum(ctx, precipitation, swe):
    precipitation.data = np.maximum(precipitation.data - swe.data, 0.0)
    return precipitation


def _dewpoint(ctx, tmax, tmin, rh):
    return meteorology.dewpoint_daily(tmax.data, tmin.data, rh.data)


for _members, _humidity in [
    ((P.dewpoint_2m_max, P.dew_point_2m_max), V.relative_humidity_2m_max),
    ((P.dewpoint_2m_min, P.dew_point_2m_min), V.relative_humidity_2m_min),
    ((P.dewpoint_2m_mean, P.dew_point_2m_mean), V.relative_humidity_2m_mean),
]:
    POST_RULES.register(*_members, deps=(TMAX, TMIN, _corrected(_humidity)),
                        unit=SiUnit.celsius)(_dewpoint)


@POST_RULES.register(P.growing_degree_days_base_0_limit_50, deps=(TMAX, TMIN), unit=SiUnit.gdd_celsius)
def _gdd(ctx, tmax, tmin):
    return meteorology.growing_degree_days(tmax.data, tmin.data, base=0.0, limit=50.0)


@POST_RULES.register(P.daylight_duration, unit=SiUnit.seconds)
def _daylight_duration(ctx):
    return zensun.daylight_duration(ctx.lat, ctx.time.time)


def _scale_to_2m(ctx, wind):
    return DataAndUnit(wind.data * meteorology.wind_scale_factor(10, 2), wind.unit)


POST_RULES.register(P.windspeed_2m_max, P.wind_speed_2m_max,
                    deps=(_corrected(V.wind_speed_10m_max),))(_scale_to_2m)
POST_RULES.register(P.windspeed_2m_mean, P.wind_speed_2m_mean,
                    deps=(_corrected(V.wind_speed_10m_mean),))(_scale_to_2m)

for _alias, _target in [
    (P.windspeed_10m_max, V.wind_speed_10m_max),
    (P.windspeed_10m_mean, V.wind_speed_10m_mean),
    (P.windgusts_10m_mean, B.wind_gusts_10m_mean),
    (P.windgusts_10m_max, B.wind_gusts_10m_max),
    (P.vapor_pressure_deficit_max, B.vapour_pressure_deficit_max),
]:
    POST_RULES.alias(_alias, _corrected(_target))

POST_RULES.validate()


class Cmip6ReaderPostBiasCorrected(DerivedReader):
    rules = POST_RULES
    raw = Cmip6Variable
    derived = Cmip6VariableDerivedPostBiasCorrection

    @classmethod
    def resolve(cls, name: str) -> VariableOrDerived:
        """Raw and pre-correction names resolve one layer down."""
        for enum, tag in ((Cmip6Variable, Raw), (Cmip6VariableDerivedBiasCorrected, Derived)):
            try:
                return Raw(tag(enum(name)))
            except ValueError:
                pass
        try:
            return Derived(Cmip6VariableDerivedPostBiasCorrection(name))
        except ValueError:
            raise UnknownVariableError(f"Unknown variable '{name}' for CMIP6") from None


async def create_cmip6_reader(
    storage: Storage,
    domain: Domain,
    lat: float,
    lon: float,
    elevation: float | None,
    mode: str = "land",
    bias_correction: bool = True,
) -> Cmip6ReaderPostBiasCorrected | None:
    """
    Full CMIP6 stack for one location.  With ``bias_correction`` the model
    is corrected toward ERA5-Land (ERA5 where ERA5-Land has no data).
    """
    location = await locate(storage, domain, lat, lon, elevation, mode)
    if location is None:
        return None
    reader: Any = Cmip6ReaderPreBiasCorrection(GenericReader(storage, location))
    if bias_correction:
        reader = await BiasCorrector.seamless(reader, storage, lat, lon, elevation, mode)
    return Cmip6ReaderPostBiasCorrected(reader)
