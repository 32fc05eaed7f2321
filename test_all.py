#!/usr/bin/env python3
"""
gridmix: Unit test suite.
Tests formulas, grids, time ranges, variable catalogues and rule tables in
isolation, without storage.
"""
import math
import sys
import traceback
from datetime import datetime, timezone
from enum import Enum

import numpy as np

T0 = int(datetime(2024, 3, 20, tzinfo=timezone.utc).timestamp())


# ═══════════════════════════════════════════════════════════════════════════════
# 1. Import checks
# ═══════════════════════════════════════════════════════════════════════════════


def test_import_config():
    import config
    assert hasattr(config, "LOCATIONS")
    assert hasattr(config, "MIXES")
    assert config.LAPSE_RATE_C_PER_M == 0.0065


def test_import_models():
    from models.domain import DOMAINS, get_domain
    from models.errors import GridmixError, IncompleteCoverageError, MissingReferenceWeightsError
    from models.series import PointRequest, PointSeries
    from models.timerange import TimeRange, TimeSettings
    from models.units import DataAndUnit, SiUnit
    from models.variable import Derived, Raw


def test_import_services():
    from services.bias_correction import BiasCorrector, SeasonalWeights
    from services.bom_reader import BomReader
    from services.cams_reader import CamsReader
    from services.cerra_reader import CerraReader
    from services.cmip_reader import Cmip6ReaderPostBiasCorrected, create_cmip6_reader
    from services.era5_reader import Era5Reader
    from services.logger import log_failure, log_series
    from services.mixer import ReaderMixer
    from services.series_engine import SeriesEngine


def test_import_main():
    # Just check main module can be found (don't run it)
    import importlib.util
    spec = importlib.util.find_spec("main")
    assert spec is not None


# ═══════════════════════════════════════════════════════════════════════════════
# 2. Meteorology
# ═══════════════════════════════════════════════════════════════════════════════

from utils import meteorology


def test_dewpoint_20c_50pct():
    td = float(meteorology.dewpoint(20.0, 50.0))
    assert abs(td - 9.3) < 0.2, f"Expected ~9.3, got {td:.3f}"


def test_dewpoint_saturated_equals_temperature():
    t = np.array([-10.0, 0.0, 25.0])
    td = meteorology.dewpoint(t, np.full(3, 100.0))
    assert np.allclose(td, t), f"Expected {t}, got {td}"


def test_relative_humidity_inverts_dewpoint():
    t = np.array([5.0, 15.0, 30.0])
    rh = meteorology.relative_humidity(t, meteorology.dewpoint(t, np.array([30.0, 60.0, 90.0])))
    assert np.allclose(rh, [30.0, 60.0, 90.0]), f"Got {rh}"


def test_dewpoint_propagates_nan():
    td = meteorology.dewpoint(np.array([np.nan, 10.0]), np.array([50.0, np.nan]))
    assert np.isnan(td).all(), f"Expected NaN, got {td}"


def test_vpd_zero_when_saturated():
    vpd = meteorology.vapour_pressure_deficit(np.array([10.0, 20.0]), np.array([10.0, 5.0]))
    assert vpd[0] == 0.0
    assert vpd[1] > 1.0, f"Expected > 1 kPa, got {vpd[1]}"


def test_cloud_cover_random_overlap():
    total = meteorology.cloud_cover_total(np.array([0, 100, 50]), np.array([0, 0, 50]), np.array([0, 0, 0]))
    assert np.allclose(total, [0.0, 100.0, 75.0]), f"Got {total}"


def test_wind_scale_10m_to_2m():
    factor = meteorology.wind_scale_factor(10, 2)
    assert abs(factor - 0.748) < 0.001, f"Expected 0.748, got {factor}"


def test_growing_degree_days_limits():
    gdd = meteorology.growing_degree_days(np.array([30.0, 60.0, -5.0]), np.array([10.0, 50.0, -15.0]))
    assert np.allclose(gdd, [20.0, 50.0, 0.0]), f"Got {gdd}"


def test_trailing_mean_short_history():
    out = meteorology.trailing_mean([1.0, 2.0, 3.0, 4.0], 2)
    assert np.allclose(out, [1.0, 1.5, 2.5, 3.5]), f"Got {out}"


def test_surface_pressure_at_sea_level():
    p = meteorology.surface_pressure(np.array([15.0]), np.array([1013.25]), 0.0)
    assert np.allclose(p, 1013.25)
    p_high = meteorology.surface_pressure(np.array([15.0]), np.array([1013.25]), 1500.0)
    assert 830 < p_high[0] < 870, f"Expected ~850 hPa at 1500 m, got {p_high[0]}"


def test_daily_vpd_mean_humidity():
    vpd = meteorology.vapour_pressure_deficit_daily(np.array([25.0]), np.array([15.0]), rh_mean=np.array([100.0]))
    assert np.allclose(vpd, 0.0), f"Saturated air has no deficit, got {vpd}"


def test_daily_et0_positive_in_summer():
    et0 = meteorology.et0_evapotranspiration_daily(
        np.array([30.0]), np.array([18.0]), np.array([24.0]), np.array([3.0]), np.array([25.0]),
        np.array([40.0]), 100.0, rh_max=np.array([80.0]), rh_min=np.array([35.0]),
    )
    assert 3.0 < et0[0] < 9.0, f"Expected a summer day ET0 of a few mm, got {et0[0]}"


# ═══════════════════════════════════════════════════════════════════════════════
# 3. Weather codes
# ═══════════════════════════════════════════════════════════════════════════════

from utils.weather_code import weather_code


def test_weather_code_cloud_classes():
    codes = weather_code(np.array([10, 30, 60, 90]), np.zeros(4), np.zeros(4), 3600)
    assert list(codes) == [0, 1, 2, 3], f"Got {codes}"


def test_weather_code_precipitation():
    codes = weather_code(np.full(4, 100.0), np.array([0.3, 2.0, 10.0, 0.0]), np.array([0, 0, 0, 1.0]), 3600)
    assert list(codes) == [51, 61, 65, 75], f"Got {codes}"


def test_weather_code_normalises_step():
    # 3 mm over 3 hours is 1 mm/h: dense drizzle, not rain
    codes = weather_code(np.array([100.0]), np.array([3.0]), np.array([0.0]), 3 * 3600)
    assert codes[0] == 55, f"Got {codes[0]}"


def test_weather_code_thunderstorm_needs_cape():
    codes = weather_code(np.array([100.0]), np.array([2.0]), np.array([0.0]), 3600, cape=np.array([3500.0]))
    assert codes[0] == 95


def test_weather_code_nan_input():
    codes = weather_code(np.array([np.nan]), np.array([0.0]), np.array([0.0]), 3600)
    assert np.isnan(codes[0])


# ═══════════════════════════════════════════════════════════════════════════════
# 4. Solar geometry
# ═══════════════════════════════════════════════════════════════════════════════

from models.timerange import TimeRange, TimeSettings
from utils import zensun


def test_is_day_equator():
    time = TimeRange(T0, T0 + 86400, 3600)
    day = zensun.is_day(0.0, 0.0, time)
    assert day[12] == 1 and day[0] == 0, f"Got {day}"


def test_daylight_duration_equator_is_12h():
    d = zensun.daylight_duration(0.0, TimeRange(T0, T0 + 86400, 86400))
    assert abs(d[0] - 43200) < 1.0, f"Got {d[0]}"


def test_daylight_duration_summer_north():
    june = int(datetime(2024, 6, 21, tzinfo=timezone.utc).timestamp())
    d = zensun.daylight_duration(60.0, TimeRange(june, june + 86400, 86400))
    assert d[0] > 16 * 3600, f"Expected > 16 h, got {d[0] / 3600:.1f} h"


def test_extraterrestrial_zero_at_night():
    time = TimeRange(T0, T0 + 86400, 3600)
    rad = zensun.extraterrestrial_radiation_instant(0.0, 0.0, time)
    assert rad[0] == 0.0 and rad[12] > 1200, f"Got {rad[0]}, {rad[12]}"
    factor = zensun.backwards_averaged_to_instant_factor(0.0, 0.0, time)
    assert factor[0] == 0.0


# ═══════════════════════════════════════════════════════════════════════════════
# 5. Grids and domains
# ═══════════════════════════════════════════════════════════════════════════════

from models.domain import CERRA, ERA5, get_domain
from models.errors import NotFoundError, UnknownVariableError
from utils.grid import SEA_ELEVATION, GridPointFraction, numeric_elevation


def test_grid_find_point_roundtrip():
    gp = ERA5.grid.find_point(0.0, 0.0)
    lat, lon = ERA5.grid.get_coordinates(gp)
    assert (lat, lon) == (0.0, 0.0), f"Got {(lat, lon)}"


def test_grid_wraps_longitude():
    assert ERA5.grid.find_point(10.0, 180.0) == ERA5.grid.find_point(10.0, -180.0)


def test_grid_outside_regional():
    assert CERRA.grid.find_point(0.0, 0.0) is None


def test_grid_interpolated_weights():
    pos = ERA5.grid.find_point_interpolated(47.3, 11.41)
    assert isinstance(pos, GridPointFraction)
    assert 0 <= pos.x_fraction < 1 and 0 <= pos.y_fraction < 1
    total = sum(w for _, w in pos.corners(ERA5.grid.nx))
    assert abs(total - 1.0) < 1e-12


def test_grid_neighbours_at_edge():
    interior = ERA5.grid.find_point(0.0, 0.0)
    assert len(ERA5.grid.neighbours(interior)) == 9
    assert len(ERA5.grid.neighbours(5)) == 6


def test_sea_marker_counts_as_sea_level():
    assert numeric_elevation(SEA_ELEVATION) == 0.0
    assert numeric_elevation(-10.0) == -10.0
    assert numeric_elevation(574.0) == 574.0
    assert np.isnan(numeric_elevation(float("nan")))


def test_domain_registry():
    assert get_domain("era5").dt_seconds == 3600
    assert get_domain("MRI_AGCM3_2_S").dt_seconds == 86400
    assert get_domain("FGOALS_f3_H").has_relative_humidity_min_max is False
    try:
        get_domain("nope")
        raise AssertionError("Expected NotFoundError")
    except NotFoundError:
        pass


# ═══════════════════════════════════════════════════════════════════════════════
# 6. Time ranges
# ═══════════════════════════════════════════════════════════════════════════════


def test_timerange_half_open():
    assert TimeRange(0, 86400, 3600).count == 24
    assert TimeRange(0, 3601, 3600).count == 2
    assert len(TimeSettings(TimeRange(0, 86400, 3600))) == 24


def test_timerange_rejects_bad_step():
    try:
        TimeRange(0, 10, 0)
        raise AssertionError("Expected ValueError")
    except ValueError:
        pass


def test_fraction_of_year_range():
    f = TimeRange(T0, T0 + 400 * 86400, 86400).fraction_of_year()
    assert (f >= 0).all() and (f < 1).all()


# ═══════════════════════════════════════════════════════════════════════════════
# 7. Variables and rule tables
# ═══════════════════════════════════════════════════════════════════════════════

from models.variable import BiasCorrectionType, Derived, Raw, requires_offset_correction_for_mixing
from services.cerra_reader import CerraReader, CerraVariable, CerraVariableDerived
from services.cmip_reader import (
    PRE_RULES,
    Cmip6ReaderPostBiasCorrected,
    Cmip6Variable,
    Cmip6VariableDerivedBiasCorrected,
    Cmip6VariableDerivedPostBiasCorrection,
)
from services.derived import RuleTable
from services.era5_reader import Era5Variable, Era5VariableDerived


def test_resolve_prefers_stored():
    assert CerraReader.resolve("temperature_2m") == Raw(CerraVariable.temperature_2m)
    assert CerraReader.resolve("dew_point_2m") == Derived(CerraVariableDerived.dew_point_2m)


def test_resolve_unknown_variable():
    try:
        CerraReader.resolve("bogus")
        raise AssertionError("Expected UnknownVariableError")
    except UnknownVariableError as exc:
        assert isinstance(exc, ValueError)


def test_resolve_cmip_layers():
    r = Cmip6ReaderPostBiasCorrected.resolve
    assert r("temperature_2m_max") == Raw(Raw(Cmip6Variable.temperature_2m_max))
    assert r("soil_moisture_0_to_7cm_mean") == Raw(Derived(Cmip6VariableDerivedBiasCorrected.soil_moisture_0_to_7cm_mean))
    assert r("rain_sum") == Derived(Cmip6VariableDerivedPostBiasCorrection.rain_sum)


def test_offset_correction_flags():
    assert requires_offset_correction_for_mixing(Raw(Era5Variable.snow_depth))
    assert requires_offset_correction_for_mixing(Derived(Era5VariableDerived.snow_depth_cm))
    assert not requires_offset_correction_for_mixing(Raw(Era5Variable.temperature_2m))


def test_bias_correction_bounds():
    assert BiasCorrectionType.relative_change(100).bounds == (0.0, 100)
    assert BiasCorrectionType.relative_change().bounds is None
    assert BiasCorrectionType.absolute_change((0, 10)).bounds == (0, 10)
    assert Cmip6Variable.relative_humidity_2m_max.bias_correction_type.bounds == (0.0, 100)


def test_every_derived_member_has_rule():
    from services.bom_reader import BomReader
    from services.era5_reader import Era5Reader
    for reader in (CerraReader, BomReader, Era5Reader, Cmip6ReaderPostBiasCorrected):
        missing = [m for m in reader.derived if m not in reader.rules]
        assert not missing, f"{reader.__name__}: no rule for {missing}"


class _Pair(str, Enum):
    a = "a"
    b = "b"


def test_rule_table_missing_rule():
    table = RuleTable(_Pair)
    table.register(_Pair.a, deps=(), unit=None)(lambda ctx: None)
    try:
        table.validate()
        raise AssertionError("Expected ValueError")
    except ValueError as exc:
        assert "b" in str(exc)


def test_rule_table_cycle():
    table = RuleTable(_Pair)
    table.alias(_Pair.a, Derived(_Pair.b))
    table.alias(_Pair.b, Derived(_Pair.a))
    try:
        table.validate()
        raise AssertionError("Expected ValueError")
    except ValueError as exc:
        assert "cycle" in str(exc)


def test_rule_table_duplicate():
    table = RuleTable(_Pair)
    table.alias(_Pair.a, Raw(CerraVariable.temperature_2m))
    try:
        table.alias(_Pair.a, Raw(CerraVariable.temperature_2m))
        raise AssertionError("Expected ValueError")
    except ValueError:
        pass


def test_cmip_humidity_dependencies_follow_domain():
    rule = PRE_RULES[Cmip6VariableDerivedBiasCorrected.et0_fao_evapotranspiration_sum]
    with_min_max = rule.dependencies_for(get_domain("MRI_AGCM3_2_S"))
    mean_only = rule.dependencies_for(get_domain("FGOALS_f3_H"))
    assert Raw(Cmip6Variable.relative_humidity_2m_min) in with_min_max
    assert Raw(Cmip6Variable.relative_humidity_2m_mean) in mean_only
    assert Raw(Cmip6Variable.relative_humidity_2m_min) not in mean_only


def test_configured_locations_resolve():
    import config
    from services.series_engine import reader_type_for
    for key, loc in config.LOCATIONS.items():
        reader_type = reader_type_for(loc["domain"])
        for name in loc["variables"]:
            reader_type.resolve(name)


# ═══════════════════════════════════════════════════════════════════════════════
# SUMMARY
# ═══════════════════════════════════════════════════════════════════════════════


def _run_all() -> int:
    passed = failed = 0
    for name, fn in list(globals().items()):
        if not (name.startswith("test_") and callable(fn)):
            continue
        try:
            fn()
            print(f"  PASS: {name}")
            passed += 1
        except Exception:
            print(f"  FAIL: {name}")
            traceback.print_exc()
            failed += 1
    print(f"\n{'='*60}")
    print(f"  RESULTS: {passed} passed, {failed} failed out of {passed + failed} tests")
    print(f"{'='*60}")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(_run_all())
