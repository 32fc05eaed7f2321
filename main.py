#!/usr/bin/env python3
"""
gridmix v1.0: Point time series from gridded weather and climate datasets.

Periodically fetches every configured location from the point-series store,
derives, mixes and bias corrects the requested variables, and writes a
JSONL summary per location.
"""
from __future__ import annotations

import asyncio
import logging
import signal
import sys

import aiohttp

import config
from services.logger import log_failure, log_series
from services.series_engine import SeriesEngine, requests_from_config
from utils.storage_client import StorageClient

# ── Logging setup ─────────────────────────────────────────────────────────────
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("gridmix")

# ── Shared state ──────────────────────────────────────────────────────────────
_shutdown_event = asyncio.Event()


def _print_banner() -> None:
    n_locations = len(config.LOCATIONS)
    banner = f"""
+--------------------------------------+
|            gridmix v1.0              |
|  Point series from gridded datasets  |
|  Locations: {n_locations:<25d}|
|  Refresh every {config.REFRESH_INTERVAL_SECONDS:<6d}s               |
+--------------------------------------+"""
    print(banner)


# ── Loop tasks ────────────────────────────────────────────────────────────────


async def refresh_loop(engine: SeriesEngine) -> None:
    """Fetch every configured location every REFRESH_INTERVAL_SECONDS."""
    requests = requests_from_config()
    by_key = {r.key: r for r in requests}
    while not _shutdown_event.is_set():
        try:
            fetched = await engine.fetch_all(requests)
            for series in fetched.values():
                log_series(series)
            for key, exc in engine.failures.items():
                log_failure(by_key[key], exc)
            logger.info("Refresh complete, %d location(s) fetched", len(fetched))
        except Exception as exc:
            logger.error("Refresh loop error: %s", exc)

        try:
            await asyncio.wait_for(
                _shutdown_event.wait(),
                timeout=config.REFRESH_INTERVAL_SECONDS,
            )
            break  # shutdown requested
        except asyncio.TimeoutError:
            pass


# ── Main ──────────────────────────────────────────────────────────────────────


async def main() -> None:
    _print_banner()

    # Set up graceful shutdown
    loop = asyncio.get_running_loop()
    for sig_name in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig_name, lambda: _shutdown_event.set())

    # Create shared HTTP session
    async with aiohttp.ClientSession(
        headers={"User-Agent": config.USER_AGENT},
        timeout=aiohttp.ClientTimeout(total=config.STORAGE_TIMEOUT_SECONDS),
    ) as session:
        storage = StorageClient(session=session)
        engine = SeriesEngine(storage)

        logger.info("Storage at %s, starting refresh loop", config.STORAGE_BASE_URL)

        task = asyncio.create_task(refresh_loop(engine), name="refresh")
        try:
            await task
        except asyncio.CancelledError:
            pass
        finally:
            logger.info("Shutting down gracefully...")
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            await storage.close()
            logger.info("gridmix stopped.")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutdown requested via Ctrl+C")
        sys.exit(0)
