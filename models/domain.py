"""
Dataset registry.

A domain is one gridded dataset: its grid, its native timestep and how far
it reaches into the future.  Domains are immutable and looked up by name.
Grids are regular latitude/longitude approximations; where the source data
is on a projected grid (CERRA) the storage layer resolves the projection.
"""
from __future__ import annotations

from dataclasses import dataclass

from models.errors import NotFoundError
from utils.grid import RegularGrid

HOUR = 3600
DAY = 86400


@dataclass(frozen=True)
class Domain:
    name: str
    grid: RegularGrid
    dt_seconds: int
    update_interval_seconds: int
    forecast_days: int = 0  # 0 = historical only
    has_relative_humidity_min_max: bool = True
    description: str = ""

    @property
    def is_forecast(self) -> bool:
        return self.forecast_days > 0

    def __str__(self) -> str:
        return self.name


def _global(nx: int, ny: int, dx: float, dy: float | None = None) -> RegularGrid:
    dy = dx if dy is None else dy
    # Grids that include both poles start at -90, cell-centred ones half a cell above
    lat_min = -90.0 if ny * dy > 180.0 else -90.0 + dy / 2
    return RegularGrid(nx=nx, ny=ny, lat_min=lat_min, lon_min=-180.0, dx=dx, dy=dy)


# ── Reanalysis ───────────────────────────────────────────────────────────────

CERRA = Domain(
    "cerra", RegularGrid(nx=2700, ny=1100, lat_min=20.0, lon_min=-60.0, dx=0.05, dy=0.05),
    dt_seconds=3 * HOUR, update_interval_seconds=DAY,
    description="Copernicus European regional reanalysis, 5.5 km",
)
ERA5 = Domain("era5", _global(1440, 721, 0.25), HOUR, DAY, description="ECMWF ERA5, 0.25°")
ERA5_LAND = Domain("era5_land", _global(3600, 1801, 0.1), HOUR, DAY, description="ECMWF ERA5-Land, 0.1°")
ERA5_DAILY = Domain("era5_daily", _global(1440, 721, 0.25), DAY, DAY, description="ERA5 daily aggregates")
ERA5_LAND_DAILY = Domain(
    "era5_land_daily", _global(3600, 1801, 0.1), DAY, DAY, description="ERA5-Land daily aggregates",
)

# ── Forecast ─────────────────────────────────────────────────────────────────

BOM_ACCESS_GLOBAL = Domain(
    "bom_access_global",
    RegularGrid(nx=2048, ny=1536, lat_min=-89.941406, lon_min=-179.912109, dx=0.17578125, dy=0.1171875),
    dt_seconds=HOUR, update_interval_seconds=6 * HOUR, forecast_days=10,
    description="Australian Bureau of Meteorology ACCESS-G",
)

# ── Air quality ──────────────────────────────────────────────────────────────

CAMS_GLOBAL = Domain(
    "cams_global", RegularGrid(nx=900, ny=451, lat_min=-90.0, lon_min=-180.0, dx=0.4, dy=0.4),
    dt_seconds=HOUR, update_interval_seconds=12 * HOUR, forecast_days=5,
    description="CAMS global atmospheric composition, 0.4°",
)
CAMS_EUROPE = Domain(
    "cams_europe", RegularGrid(nx=700, ny=420, lat_min=71.95, lon_min=-24.95, dx=0.1, dy=-0.1),
    dt_seconds=HOUR, update_interval_seconds=DAY, forecast_days=4,
    description="CAMS European air quality ensemble, 0.1°",
)

# ── CMIP6 HighResMIP climate models ──────────────────────────────────────────

CMIP6_DOMAINS = [
    Domain("MRI_AGCM3_2_S", _global(1920, 960, 0.1875), DAY, 0, forecast_days=0),
    Domain("EC_Earth3P_HR", _global(1024, 512, 0.3515625), DAY, 0),
    Domain("CMCC_CM2_VHR4", _global(1152, 768, 0.3125, 0.234375), DAY, 0),
    Domain("FGOALS_f3_H", _global(1440, 720, 0.25), DAY, 0, has_relative_humidity_min_max=False),
    Domain("HiRAM_SIT_HR", _global(1536, 768, 0.234375), DAY, 0, has_relative_humidity_min_max=False),
    Domain("MPI_ESM1_2_XR", _global(768, 384, 0.46875), DAY, 0, has_relative_humidity_min_max=False),
    Domain("NICAM16_8S", _global(1280, 640, 0.28125), DAY, 0),
]

DOMAINS: dict[str, Domain] = {
    d.name: d
    for d in [
        CERRA, ERA5, ERA5_LAND, ERA5_DAILY, ERA5_LAND_DAILY,
        BOM_ACCESS_GLOBAL, CAMS_GLOBAL, CAMS_EUROPE, *CMIP6_DOMAINS,
    ]
}


def get_domain(name: str) -> Domain:
    try:
        return DOMAINS[name]
    except KeyError:
        raise NotFoundError(f"Unknown domain '{name}'") from None
