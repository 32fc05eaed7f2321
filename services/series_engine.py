"""
Series engine: Turn point requests into series.

For each request:
  1. Resolve the variable names against the dataset's catalogue
  2. Build the reader stack: a single-domain reader, a mixer over the
     domains of a configured mix, or the CMIP6 stack with bias correction
  3. Prefetch every variable so all storage reads are in flight
  4. Get each variable; gaps a mix could not fill are kept and recorded
     when the request asked for complete coverage

Requests for different locations run concurrently; one failing location
does not affect the others.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import config
from models.domain import CMIP6_DOMAINS, Domain, get_domain
from models.errors import IncompleteCoverageError, NotFoundError
from models.series import PointRequest, PointSeries
from models.timerange import TimeRange, TimeSettings
from models.units import DataAndUnit
from services.bom_reader import BomReader
from services.cams_reader import CamsReader
from services.cerra_reader import CerraReader
from services.cmip_reader import Cmip6ReaderPostBiasCorrected, create_cmip6_reader
from services.era5_reader import Era5Reader
from services.mixer import ReaderMixer
from utils.storage_client import Storage

logger = logging.getLogger("gridmix.series_engine")

READER_TYPES: dict[str, type] = {
    "cerra": CerraReader,
    "era5": Era5Reader,
    "era5_land": Era5Reader,
    "bom_access_global": BomReader,
    "cams_global": CamsReader,
    "cams_europe": CamsReader,
    **{d.name: Cmip6ReaderPostBiasCorrected for d in CMIP6_DOMAINS},
}


def build_time_settings(
    now: datetime,
    dt_seconds: int,
    past_days: int = 0,
    forecast_days: int | None = None,
    tilt: float = 0.0,
    azimuth: float = 0.0,
) -> TimeSettings:
    """
    Window from midnight UTC ``past_days`` before ``now`` until
    ``forecast_days`` after it.
    """
    forecast_days = config.DEFAULT_FORECAST_DAYS if forecast_days is None else forecast_days
    if not 0 <= forecast_days <= config.MAX_FORECAST_DAYS:
        raise ValueError(f"forecast_days must be within 0..{config.MAX_FORECAST_DAYS}, got {forecast_days}")
    if not 0 <= past_days <= config.MAX_PAST_DAYS:
        raise ValueError(f"past_days must be within 0..{config.MAX_PAST_DAYS}, got {past_days}")
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    midnight = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    start = midnight - timedelta(days=past_days)
    end = midnight + timedelta(days=forecast_days)
    return TimeSettings(TimeRange.from_datetimes(start, end, dt_seconds), tilt=tilt, azimuth=azimuth)


def _mix_domains(name: str) -> list[Domain] | None:
    if name not in config.MIXES:
        return None
    return [get_domain(d) for d in config.MIXES[name]]


def reader_type_for(name: str) -> type:
    """Reader class serving a domain or a mix; mixes must share one catalogue."""
    domains = _mix_domains(name) or [get_domain(name)]
    types = {READER_TYPES.get(d.name) for d in domains}
    if None in types:
        raise NotFoundError(f"No reader for domain '{name}'")
    if len(types) != 1:
        raise ValueError(f"Mix '{name}' combines datasets with different variables")
    return types.pop()


class SeriesEngine:
    """Builds reader stacks against one storage and collects the results."""

    def __init__(self, storage: Storage) -> None:
        self._storage = storage
        # Latest series keyed by request key
        self.series: dict[str, PointSeries] = {}
        # Failures of the most recent fetch_all, keyed by request key
        self.failures: dict[str, Exception] = {}

    async def open_reader(self, request: PointRequest) -> Any:
        """Reader (or mixer, or corrected CMIP6 stack) for the request's location."""
        reader_type = reader_type_for(request.domain)
        domains = _mix_domains(request.domain)

        if domains is not None:
            reader = await ReaderMixer.create(
                reader_type, self._storage, domains, request.lat, request.lon, request.elevation,
                mode=request.mode, require_complete=request.require_complete,
            )
        elif reader_type is Cmip6ReaderPostBiasCorrected:
            reader = await create_cmip6_reader(
                self._storage, get_domain(request.domain), request.lat, request.lon, request.elevation,
                mode=request.mode, bias_correction=request.bias_correction,
            )
        else:
            reader = await reader_type.create(
                self._storage, get_domain(request.domain), request.lat, request.lon, request.elevation,
                mode=request.mode,
            )

        if reader is None:
            raise NotFoundError(f"{request.domain} has no data for ({request.lat:.3f}, {request.lon:.3f})")
        return reader

    async def fetch_location(self, request: PointRequest, now: datetime) -> PointSeries:
        """Read every requested variable for one location."""
        reader_type = reader_type_for(request.domain)
        variables = [reader_type.resolve(name) for name in request.variables]
        reader = await self.open_reader(request)

        time = request.time or build_time_settings(
            now, reader.model_dt_seconds, request.past_days, request.forecast_days
        )

        await reader.prefetch_many(variables, time)

        async def _get(name: str, variable: Any) -> tuple[str, DataAndUnit, list[int]]:
            try:
                return name, await reader.get(variable, time), []
            except IncompleteCoverageError as exc:
                logger.warning("%s/%s: %s", request.key, name, exc)
                return name, exc.partial, exc.missing

        results = await asyncio.gather(*(_get(n, v) for n, v in zip(request.variables, variables)))

        series = PointSeries(
            key=request.key,
            domain=request.domain,
            model_lat=reader.model_lat,
            model_lon=reader.model_lon,
            elevation=reader.target_elevation,
            time=time.time,
        )
        for name, column, missing in results:
            series.columns[name] = column
            if missing:
                series.incomplete[name] = missing

        logger.info(
            "%s: %d variable(s) from %s at (%.3f, %.3f), %d step(s)",
            request.key, len(series.columns), request.domain, series.model_lat, series.model_lon,
            len(time),
        )
        return series

    async def fetch_all(self, requests: list[PointRequest], now: datetime | None = None) -> dict[str, PointSeries]:
        """
        Fetch every request concurrently and return the series of this run.
        Failed locations are logged, kept in ``failures`` and skipped.
        """
        now = now or datetime.now(timezone.utc)
        results = await asyncio.gather(
            *(self.fetch_location(r, now) for r in requests), return_exceptions=True
        )

        self.failures = {}
        fresh: dict[str, PointSeries] = {}
        for request, result in zip(requests, results):
            if isinstance(result, Exception):
                logger.error("Failed to fetch %s (%s): %s", request.key, request.domain, result)
                self.failures[request.key] = result
                continue
            fresh[request.key] = result

        self.series.update(fresh)
        logger.info("Series engine refreshed, %d of %d location(s)", len(fresh), len(requests))
        return fresh


def requests_from_config(locations: dict[str, dict[str, Any]] | None = None) -> list[PointRequest]:
    """One request per configured location."""
    locations = config.LOCATIONS if locations is None else locations
    return [
        PointRequest(
            key=key,
            lat=loc["lat"],
            lon=loc["lon"],
            domain=loc["domain"],
            variables=list(loc["variables"]),
            elevation=loc.get("elevation"),
            past_days=loc.get("past_days", 0),
            forecast_days=loc.get("forecast_days"),
            mode=loc.get("mode", config.DEFAULT_CELL_SELECTION),
            bias_correction=loc.get("bias_correction", True),
            require_complete=loc.get("require_complete", config.REQUIRE_COMPLETE_SERIES),
        )
        for key, loc in locations.items()
    ]
