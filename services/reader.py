"""
Single-source reader: One dataset, one resolved grid location.

Reads are two-phase.  ``prefetch`` schedules the storage read as a task and
returns as soon as the I/O is requested; ``get`` awaits the task and hands
back a private copy of the samples.  Tasks are memoised per
``(variable, time settings)`` for the lifetime of the reader, which is one
request, so a variable needed by several derived quantities is read once.
"""
from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any

from models.domain import Domain
from models.errors import NotFoundError, StorageIOError
from models.timerange import TimeSettings
from models.units import DataAndUnit
from models.variable import variable_name
from utils.grid import SEA_ELEVATION, GridPoint, GridPointFraction, numeric_elevation
from utils.storage_client import Storage

logger = logging.getLogger("gridmix.reader")


@dataclass(frozen=True)
class GridLocation:
    """Where a request landed on a domain's grid."""

    domain: Domain
    position: GridPoint | GridPointFraction
    model_lat: float
    model_lon: float
    model_elevation: float
    target_elevation: float

    @property
    def is_sea(self) -> bool:
        return self.model_elevation <= SEA_ELEVATION


async def _elevation(storage: Storage, domain: Domain, location: GridPoint | GridPointFraction) -> float:
    try:
        return await storage.read_static(domain, "elevation", location)
    except NotFoundError:
        # Datasets without an elevation file (air quality) have no terrain
        return float("nan")


def _known(value: float | None) -> bool:
    return value is not None and not math.isnan(value)


async def locate(
    storage: Storage,
    domain: Domain,
    lat: float,
    lon: float,
    elevation: float | None,
    mode: str = "land",
    interpolated: bool = False,
) -> GridLocation | None:
    """
    Resolve a coordinate to a grid location, or None when it is off the grid.

    mode:
      nearest  the closest cell
      land     among the 3x3 neighbours, the land cell whose elevation is
               closest to ``elevation`` (closest cell when no target given)
      sea      the closest sea cell in the 3x3 neighbourhood, if any
    """
    grid = domain.grid
    if interpolated:
        fraction = grid.find_point_interpolated(lat, lon)
        if fraction is None:
            return None
        model_elevation = await _elevation(storage, domain, fraction)
        if _known(elevation):
            target = elevation
        else:
            target = numeric_elevation(model_elevation)
        return GridLocation(domain, fraction, lat, lon, model_elevation, target)

    gridpoint = grid.find_point(lat, lon)
    if gridpoint is None:
        return None

    chosen = gridpoint
    if mode == "nearest":
        chosen_elevation = await _elevation(storage, domain, GridPoint(gridpoint))
    else:
        candidates = grid.neighbours(gridpoint)
        elevations = await asyncio.gather(*(_elevation(storage, domain, GridPoint(c)) for c in candidates))
        by_cell = dict(zip(candidates, elevations))
        chosen_elevation = by_cell[gridpoint]
        if mode == "land" and _known(elevation):
            land = [(c, e) for c, e in by_cell.items() if _known(e) and e > SEA_ELEVATION]
            if land:
                chosen, chosen_elevation = min(land, key=lambda ce: abs(ce[1] - elevation))
        elif mode == "sea" and not (chosen_elevation <= SEA_ELEVATION):
            sea = [c for c, e in by_cell.items() if e <= SEA_ELEVATION]
            if sea:
                chosen = sea[0]
                chosen_elevation = by_cell[chosen]
        elif mode not in ("land", "sea"):
            raise ValueError(f"Unknown cell selection mode '{mode}'")

    model_lat, model_lon = grid.get_coordinates(chosen)
    if _known(elevation):
        target = elevation
    else:
        target = numeric_elevation(chosen_elevation)
    return GridLocation(domain, GridPoint(chosen), model_lat, model_lon, chosen_elevation, target)


def retrieve_exception(task: asyncio.Task) -> None:
    # Prefetched reads that nobody awaits must not warn on garbage collection
    if not task.cancelled():
        task.exception()


class GenericReader:
    """Reads stored variables of one domain at one location."""

    def __init__(self, storage: Storage, location: GridLocation) -> None:
        self._storage = storage
        self.location = location
        self._tasks: dict[tuple[str, TimeSettings], asyncio.Task] = {}
        self.reads = 0

    # ── Accessors ─────────────────────────────────────────────────────────────

    @property
    def domain(self) -> Domain:
        return self.location.domain

    @property
    def model_lat(self) -> float:
        return self.location.model_lat

    @property
    def model_lon(self) -> float:
        return self.location.model_lon

    @property
    def model_elevation(self) -> float:
        return self.location.model_elevation

    @property
    def target_elevation(self) -> float:
        return self.location.target_elevation

    @property
    def model_dt_seconds(self) -> int:
        return self.domain.dt_seconds

    # ── Two-phase reads ──────────────────────────────────────────────────────

    def _task(self, variable: Any, time: TimeSettings) -> asyncio.Task:
        name = variable_name(variable)
        key = (name, time)
        task = self._tasks.get(key)
        if task is None:
            self.reads += 1
            task = asyncio.ensure_future(self._storage.read(self.domain, self.location.position, name, time.time))
            task.add_done_callback(retrieve_exception)
            self._tasks[key] = task
        return task

    async def prefetch(self, variable: Any, time: TimeSettings) -> None:
        self._task(variable, time)

    async def get(self, variable: Any, time: TimeSettings) -> DataAndUnit:
        result = await self._task(variable, time)
        if len(result) != len(time):
            raise StorageIOError(
                f"{self.domain.name}/{variable_name(variable)}: storage returned "
                f"{len(result)} samples for {len(time)} timestamps"
            )
        return result.copy()
