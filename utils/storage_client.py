from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import aiohttp
import numpy as np

import config
from models.domain import Domain
from models.errors import NotFoundError, StorageIOError
from models.timerange import TimeRange
from models.units import DataAndUnit, SiUnit
from utils.grid import SEA_ELEVATION, GridPoint, GridPointFraction

logger = logging.getLogger("gridmix.storage")

Location = GridPoint | GridPointFraction


class Storage(Protocol):
    """What readers need from a point-series store."""

    async def read(self, domain: Domain, location: Location, variable: str, time: TimeRange) -> DataAndUnit: ...

    async def read_weights(self, domain: Domain, location: Location, variable: str) -> np.ndarray: ...

    async def read_static(self, domain: Domain, kind: str, location: Location) -> float: ...


def _to_array(values: list[Any] | None) -> np.ndarray:
    return np.array([np.nan if v is None else float(v) for v in (values or [])], dtype=np.float64)


# ── HTTP point-series store ──────────────────────────────────────────────────


class StorageClient:
    """
    Async client for the point-series store.

    Paths:
      {base}/{domain}/{variable}/{gridpoint}?start=&end=&dt=
      {base}/{domain}/weights/{variable}/{gridpoint}
      {base}/{domain}/static/{kind}/{gridpoint}

    Fractional locations read the four surrounding cells concurrently and
    blend them bilinearly.
    """

    def __init__(self, base_url: str | None = None, session: aiohttp.ClientSession | None = None) -> None:
        self._base_url = (base_url or config.STORAGE_BASE_URL).rstrip("/")
        self._session = session
        self._owns_session = session is None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": config.USER_AGENT},
                timeout=aiohttp.ClientTimeout(total=config.STORAGE_TIMEOUT_SECONDS),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    # Class-level semaphore to limit concurrent storage requests
    _semaphore: asyncio.Semaphore | None = None

    @classmethod
    def _get_semaphore(cls) -> asyncio.Semaphore:
        if cls._semaphore is None:
            cls._semaphore = asyncio.Semaphore(config.STORAGE_MAX_CONCURRENT)
        return cls._semaphore

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """GET with retry on 429, 5xx and connection errors.  404 is final."""
        url = f"{self._base_url}/{path}"
        backoff = config.STORAGE_BACKOFF_SECONDS
        last_error = ""
        session = await self._ensure_session()
        for attempt in range(config.STORAGE_MAX_RETRIES):
            # A slot is held per attempt, never across a backoff sleep
            wait = backoff
            try:
                async with self._get_semaphore(), session.get(url, params=params) as resp:
                    if resp.status == 404:
                        raise NotFoundError(f"No data at {path}")
                    if resp.status == 429 or resp.status >= 500:
                        wait = float(resp.headers.get("Retry-After", backoff))
                        last_error = f"HTTP {resp.status}"
                        logger.warning(
                            "Storage %s for %s, backing off %.1fs (attempt %d)",
                            last_error, path, wait, attempt + 1,
                        )
                    elif resp.status != 200:
                        raise StorageIOError(f"Storage returned HTTP {resp.status} for {path}")
                    else:
                        try:
                            return await resp.json()
                        except (aiohttp.ContentTypeError, ValueError) as exc:
                            raise StorageIOError(f"Malformed payload for {path}: {exc}") from exc
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                last_error = str(exc) or type(exc).__name__
                logger.warning("Storage request error for %s (attempt %d): %s", path, attempt + 1, last_error)
            await asyncio.sleep(wait)
            backoff *= 2
        raise StorageIOError(f"Storage request for {path} failed after retries: {last_error}")

    async def _blend(self, domain: Domain, location: Location, fetch_one) -> np.ndarray:
        if isinstance(location, GridPoint):
            return await fetch_one(location.gridpoint)
        corners = location.corners(domain.grid.nx)
        arrays = await asyncio.gather(*(fetch_one(gp) for gp, _ in corners))
        out = np.zeros_like(arrays[0])
        for (_, weight), values in zip(corners, arrays):
            out = out + weight * values
        return out

    async def read(self, domain: Domain, location: Location, variable: str, time: TimeRange) -> DataAndUnit:
        units: list[str] = []

        async def fetch_one(gridpoint: int) -> np.ndarray:
            payload = await self._get_json(
                f"{domain.name}/{variable}/{gridpoint}",
                params={"start": time.start, "end": time.end, "dt": time.dt_seconds},
            )
            data = _to_array(payload.get("data"))
            if len(data) != time.count:
                raise StorageIOError(
                    f"{domain.name}/{variable}: expected {time.count} samples, got {len(data)}"
                )
            units.append(payload.get("unit", SiUnit.dimensionless.value))
            return data

        data = await self._blend(domain, location, fetch_one)
        try:
            unit = SiUnit(units[0])
        except ValueError as exc:
            raise StorageIOError(f"Unknown unit '{units[0]}' for {domain.name}/{variable}") from exc
        logger.debug("Read %s/%s %s: %d samples", domain.name, variable, time, len(data))
        return DataAndUnit(data, unit)

    async def read_weights(self, domain: Domain, location: Location, variable: str) -> np.ndarray:
        async def fetch_one(gridpoint: int) -> np.ndarray:
            payload = await self._get_json(f"{domain.name}/weights/{variable}/{gridpoint}")
            return _to_array(payload.get("data"))

        return await self._blend(domain, location, fetch_one)

    async def read_static(self, domain: Domain, kind: str, location: Location) -> float:
        async def fetch_one(gridpoint: int) -> float:
            payload = await self._get_json(f"{domain.name}/static/{kind}/{gridpoint}")
            value = payload.get("value")
            return float("nan") if value is None else float(value)

        if isinstance(location, GridPoint):
            return await fetch_one(location.gridpoint)

        corners = location.corners(domain.grid.nx)
        values = await asyncio.gather(*(fetch_one(gp) for gp, _ in corners))
        # Sea corners do not contribute to an interpolated elevation
        pairs = [
            (w, v) for (_, w), v in zip(corners, values)
            if not np.isnan(v) and not (kind == "elevation" and v <= SEA_ELEVATION)
        ]
        total = sum(w for w, _ in pairs)
        if not pairs or total <= 0:
            return SEA_ELEVATION if kind == "elevation" else float("nan")
        return sum(w * v for w, v in pairs) / total
