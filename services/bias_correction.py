"""
Bias correction: Pull climate-model output toward a reference climatology.

Every bias-corrected variable has a seasonal weight curve per grid cell in
two places: in the model's own weight dataset (the model climatology) and in
a reference dataset such as ERA5-Land (the observed climatology).  For each
sample the two curves are looked up at the sample's position in the year and
the model value is shifted by their difference (``absolute_change``) or
scaled by their ratio (``relative_change``).

After the seasonal adjustment:
  - samples are clamped into the variable's physical bounds
  - 2 m temperatures get a lapse-rate correction of 0.0065 °C/m for the
    difference between the reference cell elevation and the requested
    elevation

Reference datasets are tried finest first.  A reference that has no weight
file for the cell, or whose curve has gaps, hands over to the next one.
"""
from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
from scipy import stats

import config
from models.domain import ERA5_DAILY, ERA5_LAND_DAILY, Domain
from models.errors import MissingReferenceWeightsError, NotFoundError
from models.timerange import TimeRange, TimeSettings
from models.units import DataAndUnit, SiUnit
from models.variable import BiasCorrectionType, innermost, is_elevation_correctable, variable_name
from services.reader import locate, retrieve_exception
from utils.grid import GridPoint, GridPointFraction, numeric_elevation
from utils.storage_client import Storage

logger = logging.getLogger("gridmix.bias_correction")


# ── Seasonal weight curves ───────────────────────────────────────────────────


class SeasonalWeights:
    """
    Climatological means at ``n`` evenly spaced positions in the year.

    Bin ``k`` is centred at fraction ``(k + 0.5) / n``.  Lookups interpolate
    linearly between the two nearest centres and wrap around new year.
    """

    def __init__(self, means_per_year: Sequence[float] | np.ndarray) -> None:
        self.means_per_year = np.asarray(means_per_year, dtype=np.float64)
        if self.means_per_year.ndim != 1 or len(self.means_per_year) == 0:
            raise ValueError("means_per_year must be a non-empty 1-D sequence")

    @classmethod
    def from_series(
        cls,
        values: Sequence[float] | np.ndarray,
        time: TimeRange,
        bins_per_year: int | None = None,
    ) -> SeasonalWeights:
        """Per-bin means of a climatology series.  NaN samples are ignored."""
        bins = bins_per_year or config.SEASONAL_BINS_PER_YEAR
        values = np.asarray(values, dtype=np.float64)
        fraction = time.fraction_of_year()
        valid = ~np.isnan(values)
        means, _, _ = stats.binned_statistic(
            fraction[valid], values[valid], statistic="mean", bins=bins, range=(0.0, 1.0)
        )
        return cls(means)

    def __len__(self) -> int:
        return len(self.means_per_year)

    @property
    def is_usable(self) -> bool:
        return not bool(np.isnan(self.means_per_year).any())

    def at(self, time: TimeRange) -> np.ndarray:
        n = len(self.means_per_year)
        position = time.fraction_of_year() * n - 0.5
        lower = np.floor(position)
        weight = position - lower
        i0 = lower.astype(np.int64) % n
        i1 = (i0 + 1) % n
        return self.means_per_year[i0] * (1.0 - weight) + self.means_per_year[i1] * weight

    def apply_offset(
        self,
        data: np.ndarray,
        model: SeasonalWeights,
        time: TimeRange,
        kind: BiasCorrectionType,
    ) -> np.ndarray:
        """
        Correct ``data`` (model output) with ``self`` as the reference curve.

        A non-positive or missing model mean leaves the sample unscaled in
        relative mode.
        """
        reference = self.at(time)
        control = model.at(time)
        data = np.asarray(data, dtype=np.float64)
        if kind.is_relative:
            usable = np.isfinite(control) & (control > 0) & np.isfinite(reference)
            ratio = np.divide(reference, control, out=np.ones_like(reference), where=usable)
            return data * ratio
        return data + (reference - control)


def clamp(data: np.ndarray, bounds: tuple[float, float] | None) -> np.ndarray:
    if bounds is None:
        return data
    return np.clip(data, bounds[0], bounds[1])


def lapse_rate_correction(
    data: np.ndarray,
    unit: SiUnit,
    variable: Any,
    model_elevation: float,
    target_elevation: float,
) -> np.ndarray:
    """Shift temperatures from the model cell's elevation to the requested one."""
    if not is_elevation_correctable(variable) or unit != SiUnit.celsius:
        return data
    if math.isnan(model_elevation) or math.isnan(target_elevation) or model_elevation == target_elevation:
        return data
    return data + (model_elevation - target_elevation) * config.LAPSE_RATE_C_PER_M


def bias_correction_type(variable: Any) -> BiasCorrectionType | None:
    return getattr(innermost(variable), "bias_correction_type", None)


# ── Reference sources ────────────────────────────────────────────────────────


@dataclass
class ReferenceSource:
    """
    A reference weight dataset at one position.  ``elevation`` may be left
    as None for interpolated positions; it is then read on first use.
    Sea cells are stored at 0 m.
    """

    domain: Domain
    position: GridPoint | GridPointFraction
    elevation: float | None = None

    def __post_init__(self) -> None:
        if self.elevation is not None:
            self.elevation = numeric_elevation(self.elevation)

    async def resolve_elevation(self, storage: Storage) -> float:
        if self.elevation is None:
            try:
                self.elevation = numeric_elevation(
                    await storage.read_static(self.domain, "elevation", self.position)
                )
            except NotFoundError:
                self.elevation = float("nan")
        return self.elevation


class BiasCorrector:
    """
    Wraps a reader (single source or mixer) and corrects every variable that
    declares a ``bias_correction_type``.  Other variables pass through.
    """

    def __init__(self, reader: Any, storage: Storage, references: Sequence[ReferenceSource]) -> None:
        if not references:
            raise ValueError("BiasCorrector needs at least one reference source")
        self.reader = reader
        self._storage = storage
        self.references = list(references)
        self._control: dict[str, asyncio.Task] = {}
        self._reference: dict[str, asyncio.Task] = {}

    # ── Factories ─────────────────────────────────────────────────────────────

    @classmethod
    async def seamless(
        cls,
        reader: Any,
        storage: Storage,
        lat: float,
        lon: float,
        elevation: float | None,
        mode: str = "land",
    ) -> BiasCorrector:
        """ERA5-Land daily weights with ERA5 daily as fallback.  Sea cells skip ERA5-Land."""
        references: list[ReferenceSource] = []
        land = await locate(storage, ERA5_LAND_DAILY, lat, lon, elevation, mode)
        if land is not None and not land.is_sea:
            references.append(ReferenceSource(ERA5_LAND_DAILY, land.position, land.model_elevation))
        era5 = await locate(storage, ERA5_DAILY, lat, lon, elevation, mode)
        if era5 is not None:
            references.append(ReferenceSource(ERA5_DAILY, era5.position, era5.model_elevation))
        if not references:
            raise MissingReferenceWeightsError("*", [ERA5_LAND_DAILY.name, ERA5_DAILY.name])
        return cls(reader, storage, references)

    @classmethod
    async def for_reference_domain(
        cls,
        reader: Any,
        storage: Storage,
        reference: Domain,
        lat: float,
        lon: float,
        elevation: float | None,
        mode: str = "land",
        interpolated: bool = False,
    ) -> BiasCorrector:
        """Weights of one reference domain at the nearest or an interpolated position."""
        grid = reference.grid
        if interpolated:
            position = grid.find_point_interpolated(lat, lon)
            if position is None:
                raise MissingReferenceWeightsError("*", [reference.name])
            return cls(reader, storage, [ReferenceSource(reference, position)])
        location = await locate(storage, reference, lat, lon, elevation, mode)
        if location is None:
            raise MissingReferenceWeightsError("*", [reference.name])
        return cls(reader, storage, [ReferenceSource(reference, location.position, location.model_elevation)])

    # ── Accessors ─────────────────────────────────────────────────────────────

    @property
    def domain(self) -> Domain:
        return self.reader.domain

    @property
    def location(self):
        return self.reader.location

    @property
    def model_lat(self) -> float:
        return self.reader.model_lat

    @property
    def model_lon(self) -> float:
        return self.reader.model_lon

    @property
    def model_elevation(self) -> float:
        return self.reader.model_elevation

    @property
    def target_elevation(self) -> float:
        return self.reader.target_elevation

    @property
    def model_dt_seconds(self) -> int:
        return self.reader.model_dt_seconds

    # ── Weight loading ───────────────────────────────────────────────────────

    async def _load_control(self, name: str) -> SeasonalWeights:
        weights = await self._storage.read_weights(self.domain, self.location.position, name)
        return SeasonalWeights(weights)

    async def _load_reference(self, name: str) -> tuple[SeasonalWeights, ReferenceSource]:
        tried: list[str] = []
        for source in self.references:
            tried.append(source.domain.name)
            try:
                weights = SeasonalWeights(
                    await self._storage.read_weights(source.domain, source.position, name)
                )
            except NotFoundError:
                logger.warning("No %s weights for %s, trying next reference", source.domain.name, name)
                continue
            if not weights.is_usable:
                logger.warning("%s weights for %s contain gaps, trying next reference", source.domain.name, name)
                continue
            await source.resolve_elevation(self._storage)
            return weights, source
        raise MissingReferenceWeightsError(name, tried)

    def _weights_task(self, cache: dict[str, asyncio.Task], name: str, loader) -> asyncio.Task:
        task = cache.get(name)
        if task is None:
            task = asyncio.ensure_future(loader(name))
            task.add_done_callback(retrieve_exception)
            cache[name] = task
        return task

    # ── Two-phase reads ──────────────────────────────────────────────────────

    async def prefetch(self, variable: Any, time: TimeSettings) -> None:
        await self.reader.prefetch(variable, time)
        if bias_correction_type(variable) is not None:
            name = variable_name(variable)
            self._weights_task(self._control, name, self._load_control)
            self._weights_task(self._reference, name, self._load_reference)

    async def prefetch_many(self, variables, time: TimeSettings) -> None:
        for variable in variables:
            await self.prefetch(variable, time)

    async def get(self, variable: Any, time: TimeSettings) -> DataAndUnit:
        kind = bias_correction_type(variable)
        result = await self.reader.get(variable, time)
        if kind is None:
            return result

        name = variable_name(variable)
        control = await self._weights_task(self._control, name, self._load_control)
        reference, source = await self._weights_task(self._reference, name, self._load_reference)

        data = reference.apply_offset(result.data, control, time.time, kind)
        data = clamp(data, kind.bounds)
        data = lapse_rate_correction(data, result.unit, variable, source.elevation, self.target_elevation)
        logger.debug("Bias corrected %s with %s weights", name, source.domain.name)
        return DataAndUnit(data, result.unit)
