"""
Multi-source mixer: Blend several readers of the same variable catalogue.

Readers are ordered coarse to fine.  The finest reader wins wherever it has
data; each coarser reader only fills samples that are still missing, and
sources are consulted only until no gap remains.

Accumulated quantities (snow depth, soil moisture) cannot be patched value
by value: two models disagree on the absolute level, so splicing them
creates jumps.  For those the blend works on consecutive differences
instead: the finest series is delta coded, missing deltas are taken from
the coarser source, and the result is integrated back and clamped at zero.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Iterable, Sequence

import numpy as np

from models.domain import Domain
from models.errors import IncompleteCoverageError
from models.timerange import TimeSettings
from models.units import DataAndUnit
from models.variable import requires_offset_correction_for_mixing, variable_name
from utils.grid import numeric_elevation

logger = logging.getLogger("gridmix.mixer")


# ── Delta coding ─────────────────────────────────────────────────────────────


def delta_encode(data: np.ndarray) -> np.ndarray:
    """First sample kept, every later sample replaced by its step from the previous one."""
    out = np.array(data, dtype=np.float64, copy=True)
    if len(out) > 1:
        out[1:] = np.diff(data)
    return out


def delta_decode(data: np.ndarray) -> np.ndarray:
    """Inverse of ``delta_encode``; a NaN step carries forward as NaN."""
    return np.cumsum(np.asarray(data, dtype=np.float64))


def integrate_if_nan(data: np.ndarray, other: np.ndarray) -> None:
    """Fill NaN samples of ``data`` in place from ``other``."""
    gaps = np.isnan(data) & ~np.isnan(other)
    data[gaps] = other[gaps]


def integrate_if_nan_delta_coded(data: np.ndarray, other: np.ndarray) -> None:
    """
    Fill NaN steps of a delta-coded ``data`` in place with the steps of the
    plain series ``other``.  The first sample is taken as an absolute value.
    """
    if len(data) == 0:
        return
    if np.isnan(data[0]) and not np.isnan(other[0]):
        data[0] = other[0]
    steps = other[1:] - other[:-1]
    gaps = np.isnan(data[1:]) & ~np.isnan(steps)
    data[1:][gaps] = steps[gaps]


# ── Mixer ────────────────────────────────────────────────────────────────────


class ReaderMixer:
    """
    Behaves like a single reader.  Coordinates, elevations and timestep are
    those of the finest (last) reader.
    """

    def __init__(self, readers: Sequence[Any], require_complete: bool = False) -> None:
        if not readers:
            raise ValueError("ReaderMixer needs at least one reader")
        self.readers = list(readers)
        self.require_complete = require_complete

    @classmethod
    async def create(
        cls,
        reader_type: Any,
        storage: Any,
        domains: Sequence[Domain],
        lat: float,
        lon: float,
        elevation: float | None,
        mode: str = "land",
        require_complete: bool = False,
    ) -> ReaderMixer | None:
        """
        Build one reader per domain, coarse to fine.  The finest domain is
        resolved first so its model elevation (0 m for sea) can stand in for
        a missing target elevation.  Domains that do not cover the location
        are skipped; None when none does.
        """
        readers: list[Any] = []
        for domain in reversed(list(domains)):
            reader = await reader_type.create(storage, domain, lat, lon, elevation, mode)
            if reader is None:
                logger.debug("Domain %s does not cover (%.3f, %.3f)", domain.name, lat, lon)
                continue
            if elevation is None or (isinstance(elevation, float) and math.isnan(elevation)):
                elevation = numeric_elevation(reader.model_elevation)
            readers.insert(0, reader)
        if not readers:
            return None
        return cls(readers, require_complete=require_complete)

    # ── Accessors ─────────────────────────────────────────────────────────────

    @property
    def finest(self) -> Any:
        return self.readers[-1]

    @property
    def domain(self) -> Domain:
        return self.finest.domain

    @property
    def location(self):
        return self.finest.location

    @property
    def model_lat(self) -> float:
        return self.finest.model_lat

    @property
    def model_lon(self) -> float:
        return self.finest.model_lon

    @property
    def model_elevation(self) -> float:
        return self.finest.model_elevation

    @property
    def target_elevation(self) -> float:
        return self.finest.target_elevation

    @property
    def model_dt_seconds(self) -> int:
        return self.finest.model_dt_seconds

    # ── Two-phase reads ──────────────────────────────────────────────────────

    async def prefetch(self, variable: Any, time: TimeSettings) -> None:
        for reader in self.readers:
            await reader.prefetch(variable, time)

    async def prefetch_many(self, variables: Iterable[Any], time: TimeSettings) -> None:
        for variable in variables:
            await self.prefetch(variable, time)

    async def get(self, variable: Any, time: TimeSettings, require_complete: bool | None = None) -> DataAndUnit:
        cumulative = requires_offset_correction_for_mixing(variable)
        result: DataAndUnit | None = None
        used = 0

        for reader in reversed(self.readers):
            current = await reader.get(variable, time)
            used += 1
            if result is None:
                result = current
                if cumulative:
                    result.data = delta_encode(result.data)
            elif cumulative:
                integrate_if_nan_delta_coded(result.data, current.data)
            else:
                integrate_if_nan(result.data, current.data)
            if not np.isnan(result.data).any():
                break

        if cumulative:
            result.data = np.maximum(delta_decode(result.data), 0.0)

        missing = np.flatnonzero(np.isnan(result.data))
        logger.debug(
            "Mixed %s from %d of %d source(s), %d sample(s) missing",
            variable_name(variable), used, len(self.readers), len(missing),
        )
        complete = self.require_complete if require_complete is None else require_complete
        if complete and len(missing):
            raise IncompleteCoverageError(variable_name(variable), missing.tolist(), partial=result)
        return result
