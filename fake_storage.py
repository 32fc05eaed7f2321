"""
In-memory point-series store for tests.

Series are registered per (domain, variable) as either a fixed array or a
function of the requested ``TimeRange``.  Anything not registered raises
``NotFoundError`` like the real store.  Every read is counted so tests can
check that prefetching and memoisation avoid duplicate I/O.
"""
from __future__ import annotations

import asyncio
from collections import Counter
from typing import Any, Callable, Union

import numpy as np

from models.domain import Domain
from models.errors import NotFoundError
from models.timerange import TimeRange
from models.units import DataAndUnit, SiUnit
from utils.grid import GridPoint, GridPointFraction

Series = Union[np.ndarray, Callable[[TimeRange], Any]]


class FakeStorage:
    def __init__(self, default_elevation: float | None = 100.0) -> None:
        self.default_elevation = default_elevation
        self._series: dict[tuple[str, str], tuple[Series, SiUnit]] = {}
        self._weights: dict[tuple[str, str], np.ndarray] = {}
        self._static: dict[tuple[str, str], float | Callable[[int], float]] = {}
        self._errors: dict[tuple[str, str], Exception] = {}
        self.reads: Counter = Counter()
        self.weight_reads: Counter = Counter()

    # ── Setup ────────────────────────────────────────────────────────────────

    def add(self, domain: Domain | str, variable: str, values: Series, unit: SiUnit = SiUnit.dimensionless) -> None:
        self._series[(_name(domain), variable)] = (values, unit)

    def add_weights(self, domain: Domain | str, variable: str, weights) -> None:
        self._weights[(_name(domain), variable)] = np.asarray(weights, dtype=np.float64)

    def add_static(self, domain: Domain | str, kind: str, value: float | Callable[[int], float]) -> None:
        self._static[(_name(domain), kind)] = value

    def fail(self, domain: Domain | str, variable: str, error: Exception) -> None:
        self._errors[(_name(domain), variable)] = error

    # ── Storage interface ────────────────────────────────────────────────────

    async def read(self, domain: Domain, location: GridPoint | GridPointFraction, variable: str, time: TimeRange) -> DataAndUnit:
        await asyncio.sleep(0)
        key = (domain.name, variable)
        self.reads[key] += 1
        if key in self._errors:
            raise self._errors[key]
        if key not in self._series:
            raise NotFoundError(f"No series {domain.name}/{variable}")
        values, unit = self._series[key]
        data = values(time) if callable(values) else values
        return DataAndUnit(np.array(data, dtype=np.float64, copy=True), unit)

    async def read_weights(self, domain: Domain, location: GridPoint | GridPointFraction, variable: str) -> np.ndarray:
        await asyncio.sleep(0)
        key = (domain.name, variable)
        self.weight_reads[key] += 1
        if key not in self._weights:
            raise NotFoundError(f"No weights {domain.name}/{variable}")
        return self._weights[key].copy()

    async def read_static(self, domain: Domain, kind: str, location: GridPoint | GridPointFraction) -> float:
        key = (domain.name, kind)
        if key in self._static:
            value = self._static[key]
            return float(value(location.gridpoint) if callable(value) else value)
        if kind == "elevation" and self.default_elevation is not None:
            return self.default_elevation
        raise NotFoundError(f"No static {kind} for {domain.name}")


def _name(domain: Domain | str) -> str:
    return domain if isinstance(domain, str) else domain.name


def constant(value: float) -> Callable[[TimeRange], np.ndarray]:
    """Series with the same value at every timestamp."""
    return lambda time: np.full(time.count, value, dtype=np.float64)


def ramp(start: float, step: float) -> Callable[[TimeRange], np.ndarray]:
    """Series increasing by ``step`` per timestamp."""
    return lambda time: start + step * np.arange(time.count, dtype=np.float64)
