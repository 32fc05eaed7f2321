#!/usr/bin/env python3
"""
gridmix: Mixer tests.

Covers NaN fallback across sources, early stopping once a series is
complete, delta-coded blending of accumulated quantities and the
require-complete contract.
"""
import asyncio
import sys
import traceback
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import numpy as np

from fake_storage import FakeStorage, constant
from models.domain import CAMS_EUROPE, CAMS_GLOBAL, ERA5, ERA5_LAND
from models.errors import IncompleteCoverageError, StorageIOError
from models.timerange import TimeRange, TimeSettings
from models.units import DataAndUnit, SiUnit
from models.variable import Derived, Raw
from services.cams_reader import CamsReader, CamsVariable
from services.era5_reader import Era5Reader, Era5Variable, Era5VariableDerived
from services.mixer import (
    ReaderMixer,
    delta_decode,
    delta_encode,
    integrate_if_nan,
    integrate_if_nan_delta_coded,
)
from utils.grid import SEA_ELEVATION

NAN = float("nan")
T0 = int(datetime(2024, 1, 15, tzinfo=timezone.utc).timestamp())


def _hours(n: int) -> TimeSettings:
    return TimeSettings(TimeRange(T0, T0 + n * 3600, 3600))


class StubReader:
    """Returns fixed arrays and counts calls."""

    def __init__(self, values, elevation: float = 100.0, unit: SiUnit = SiUnit.celsius) -> None:
        self.values = np.asarray(values, dtype=np.float64)
        self.unit = unit
        self.model_elevation = elevation
        self.target_elevation = elevation
        self.model_lat = 47.0
        self.model_lon = 11.0
        self.model_dt_seconds = 3600
        self.prefetches = 0
        self.gets = 0

    async def prefetch(self, variable, time):
        self.prefetches += 1

    async def get(self, variable, time):
        self.gets += 1
        return DataAndUnit(self.values.copy(), self.unit)


TEMPERATURE = Raw(Era5Variable.temperature_2m)
SNOW_DEPTH = Raw(Era5Variable.snow_depth)


# ═══════════════════════════════════════════════════════════════════════════════
# 1. Delta coding
# ═══════════════════════════════════════════════════════════════════════════════


def test_delta_roundtrip():
    data = np.array([3.0, 4.5, 4.5, 2.0, 7.25])
    encoded = delta_encode(data)
    assert np.allclose(encoded, [3.0, 1.5, 0.0, -2.5, 5.25]), f"Got {encoded}"
    assert np.allclose(delta_decode(encoded), data)


def test_delta_encode_keeps_input():
    data = np.array([1.0, 2.0])
    delta_encode(data)
    assert np.array_equal(data, [1.0, 2.0])


def test_integrate_if_nan():
    data = np.array([1.0, NAN, 3.0, NAN])
    integrate_if_nan(data, np.array([9.0, 9.0, 9.0, NAN]))
    assert np.allclose(data[:3], [1.0, 9.0, 3.0]) and np.isnan(data[3])


def test_integrate_delta_coded_uses_steps():
    data = np.array([NAN, NAN, 2.0])
    integrate_if_nan_delta_coded(data, np.array([10.0, 13.0, 20.0]))
    assert np.allclose(data, [10.0, 3.0, 2.0]), f"Got {data}"


# ═══════════════════════════════════════════════════════════════════════════════
# 2. Value mixing
# ═══════════════════════════════════════════════════════════════════════════════


def test_fine_gaps_filled_from_coarse():
    async def run():
        fine = StubReader([0, 1, NAN, 3, 4, NAN, 6])
        coarse = StubReader([10, 11, 12, 13, 14, 15, 16])
        mixer = ReaderMixer([coarse, fine])
        result = await mixer.get(TEMPERATURE, _hours(7))
        assert np.allclose(result.data, [0, 1, 12, 3, 4, 15, 6]), f"Got {result.data}"

    asyncio.run(run())


def test_complete_fine_skips_coarse():
    async def run():
        fine = StubReader([1.0, 2.0, 3.0])
        coarse = StubReader([9.0, 9.0, 9.0])
        mixer = ReaderMixer([coarse, fine])
        result = await mixer.get(TEMPERATURE, _hours(3))
        assert np.allclose(result.data, [1.0, 2.0, 3.0])
        assert coarse.gets == 0, "Coarse source read although fine one was complete"

    asyncio.run(run())


def test_three_sources_priority():
    async def run():
        fine = StubReader([1.0, NAN, NAN])
        mid = StubReader([NAN, 2.0, NAN])
        coarse = StubReader([7.0, 8.0, 3.0])
        result = await ReaderMixer([coarse, mid, fine]).get(TEMPERATURE, _hours(3))
        assert np.allclose(result.data, [1.0, 2.0, 3.0]), f"Got {result.data}"

    asyncio.run(run())


def test_prefetch_reaches_every_source():
    async def run():
        readers = [StubReader([1.0]), StubReader([2.0])]
        mixer = ReaderMixer(readers)
        await mixer.prefetch_many([TEMPERATURE, SNOW_DEPTH], _hours(1))
        assert [r.prefetches for r in readers] == [2, 2]

    asyncio.run(run())


def test_source_error_aborts_blend():
    async def run():
        fine = StubReader([1.0, NAN])
        coarse = StubReader([2.0, 2.0])
        coarse.get = AsyncMock(side_effect=StorageIOError("timeout"))
        try:
            await ReaderMixer([coarse, fine]).get(TEMPERATURE, _hours(2))
            raise AssertionError("Expected StorageIOError")
        except StorageIOError:
            pass
        assert coarse.get.await_count == 1

    asyncio.run(run())


def test_accessors_follow_finest():
    fine = StubReader([1.0], elevation=574.0)
    mixer = ReaderMixer([StubReader([1.0], elevation=900.0), fine])
    assert mixer.finest is fine
    assert mixer.model_elevation == 574.0


def test_empty_mixer_rejected():
    try:
        ReaderMixer([])
        raise AssertionError("Expected ValueError")
    except ValueError:
        pass


# ═══════════════════════════════════════════════════════════════════════════════
# 3. Accumulated quantities
# ═══════════════════════════════════════════════════════════════════════════════


def test_cumulative_blend_is_continuous():
    async def run():
        fine = StubReader([NAN, NAN, NAN, 10, 11, 12], unit=SiUnit.metre)
        coarse = StubReader([100, 101, 102, 103, 104, 105], unit=SiUnit.metre)
        result = await ReaderMixer([coarse, fine]).get(SNOW_DEPTH, _hours(6))
        assert not np.isnan(result.data).any()
        assert np.allclose(np.diff(result.data), 1.0), f"Got {result.data}"
        assert (result.data >= 0).all()

    asyncio.run(run())


def test_cumulative_blend_clamped_at_zero():
    async def run():
        fine = StubReader([1.0, NAN, NAN, 2.0, 2.5], unit=SiUnit.metre)
        coarse = StubReader([10.0, 8.0, 5.0, 4.0, 4.0], unit=SiUnit.metre)
        result = await ReaderMixer([coarse, fine]).get(SNOW_DEPTH, _hours(5))
        assert (result.data >= 0).all(), f"Got {result.data}"
        assert result.data[0] == 1.0

    asyncio.run(run())


def test_cumulative_complete_fine_unchanged():
    async def run():
        fine = StubReader([0.5, 0.7, 0.2], unit=SiUnit.metre)
        result = await ReaderMixer([StubReader([9, 9, 9]), fine]).get(SNOW_DEPTH, _hours(3))
        assert np.allclose(result.data, [0.5, 0.7, 0.2])

    asyncio.run(run())


# ═══════════════════════════════════════════════════════════════════════════════
# 4. Coverage
# ═══════════════════════════════════════════════════════════════════════════════


def test_require_complete_raises_with_partial():
    async def run():
        fine = StubReader([1.0, NAN, NAN])
        coarse = StubReader([5.0, 6.0, NAN])
        mixer = ReaderMixer([coarse, fine], require_complete=True)
        try:
            await mixer.get(TEMPERATURE, _hours(3))
            raise AssertionError("Expected IncompleteCoverageError")
        except IncompleteCoverageError as exc:
            assert exc.missing == [2]
            assert exc.variable == "temperature_2m"
            assert np.allclose(exc.partial.data[:2], [1.0, 6.0])

    asyncio.run(run())


def test_gaps_tolerated_by_default():
    async def run():
        mixer = ReaderMixer([StubReader([NAN, 2.0]), StubReader([NAN, NAN])])
        result = await mixer.get(TEMPERATURE, _hours(2))
        assert np.isnan(result.data[0]) and result.data[1] == 2.0
        try:
            await mixer.get(TEMPERATURE, _hours(2), require_complete=True)
            raise AssertionError("Per-call require_complete ignored")
        except IncompleteCoverageError:
            pass

    asyncio.run(run())


# ═══════════════════════════════════════════════════════════════════════════════
# 5. Mixing real readers
# ═══════════════════════════════════════════════════════════════════════════════


def test_create_skips_uncovered_domains():
    async def run():
        storage = FakeStorage()
        sydney = await ReaderMixer.create(CamsReader, storage, [CAMS_GLOBAL, CAMS_EUROPE], -33.87, 151.21, None)
        paris = await ReaderMixer.create(CamsReader, storage, [CAMS_GLOBAL, CAMS_EUROPE], 48.86, 2.35, None)
        assert len(sydney.readers) == 1 and sydney.domain is CAMS_GLOBAL
        assert len(paris.readers) == 2 and paris.domain is CAMS_EUROPE

    asyncio.run(run())


def test_era5_land_gaps_from_era5():
    async def run():
        storage = FakeStorage()
        storage.add(ERA5, "temperature_2m", np.array([1.0, 2.0, 3.0]), SiUnit.celsius)
        storage.add(ERA5_LAND, "temperature_2m", np.array([NAN, 5.0, 6.0]), SiUnit.celsius)
        mixer = await ReaderMixer.create(Era5Reader, storage, [ERA5, ERA5_LAND], 47.27, 11.40, 574.0)
        await mixer.prefetch(TEMPERATURE, _hours(3))
        result = await mixer.get(TEMPERATURE, _hours(3))
        assert np.allclose(result.data, [1.0, 5.0, 6.0]), f"Got {result.data}"
        assert result.unit == SiUnit.celsius

    asyncio.run(run())


def test_sea_cell_hands_sea_level_to_coarser_sources():
    async def run():
        storage = FakeStorage(default_elevation=SEA_ELEVATION)
        for domain, temperature in ((ERA5, constant(10.0)), (ERA5_LAND, np.array([10.0, NAN, 10.0]))):
            storage.add(domain, "temperature_2m", temperature, SiUnit.celsius)
            storage.add(domain, "pressure_msl", constant(1013.0), SiUnit.hectopascal)
        mixer = await ReaderMixer.create(Era5Reader, storage, [ERA5, ERA5_LAND], 54.0, 7.0, None)
        targets = [reader.target_elevation for reader in mixer.readers]
        assert targets == [0.0, 0.0], f"Got targets {targets}"
        result = await mixer.get(Derived(Era5VariableDerived.surface_pressure), _hours(3))
        assert np.allclose(result.data, 1013.0), f"Got {result.data}"

    asyncio.run(run())


def test_derived_snow_depth_is_delta_mixed():
    async def run():
        storage = FakeStorage()
        storage.add(ERA5, "snow_depth", np.array([1.0, 1.1, 1.2]), SiUnit.metre)
        storage.add(ERA5_LAND, "snow_depth", np.array([0.3, NAN, NAN]), SiUnit.metre)
        mixer = await ReaderMixer.create(Era5Reader, storage, [ERA5, ERA5_LAND], 47.27, 11.40, 574.0)
        result = await mixer.get(Derived(Era5VariableDerived.snow_depth_cm), _hours(3))
        assert np.allclose(result.data, [30.0, 40.0, 50.0]), f"Got {result.data}"

    asyncio.run(run())


def test_cams_mix_fills_outside_europe_hours():
    async def run():
        storage = FakeStorage()
        storage.add(CAMS_GLOBAL, "pm2_5", constant(12.0), SiUnit.microgram_per_cubic_metre)
        storage.add(CAMS_EUROPE, "pm2_5", np.array([8.0, NAN]), SiUnit.microgram_per_cubic_metre)
        mixer = await ReaderMixer.create(CamsReader, storage, [CAMS_GLOBAL, CAMS_EUROPE], 48.86, 2.35, None)
        result = await mixer.get(Raw(CamsVariable.pm2_5), _hours(2))
        assert np.allclose(result.data, [8.0, 12.0])

    asyncio.run(run())


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
