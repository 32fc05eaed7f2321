from __future__ import annotations

import math
from dataclasses import dataclass

# Storage marks sea cells with this elevation.
SEA_ELEVATION = -999.0


def numeric_elevation(elevation: float) -> float:
    """Elevation usable in formulas: sea cells count as 0 m."""
    return 0.0 if elevation <= SEA_ELEVATION else elevation


@dataclass(frozen=True)
class GridPoint:
    """A single cell, addressed as ``y * nx + x``."""

    gridpoint: int


@dataclass(frozen=True)
class GridPointFraction:
    """A position between four cells; fractions run from 0 to 1 along x and y."""

    gridpoint: int
    x_fraction: float
    y_fraction: float

    def corners(self, nx: int) -> list[tuple[int, float]]:
        """The four surrounding cells with their bilinear weights."""
        xf, yf = self.x_fraction, self.y_fraction
        return [
            (self.gridpoint, (1 - xf) * (1 - yf)),
            (self.gridpoint + 1, xf * (1 - yf)),
            (self.gridpoint + nx, (1 - xf) * yf),
            (self.gridpoint + nx + 1, xf * yf),
        ]


@dataclass(frozen=True)
class RegularGrid:
    """
    Regular latitude/longitude grid.

    ``dy`` may be negative for datasets stored north to south.  Longitudes
    wrap when the grid covers the whole globe.
    """

    nx: int
    ny: int
    lat_min: float
    lon_min: float
    dx: float
    dy: float

    @property
    def count(self) -> int:
        return self.nx * self.ny

    @property
    def is_global(self) -> bool:
        return self.nx * abs(self.dx) >= 359.0

    def _x(self, lon: float) -> float:
        x = (lon - self.lon_min) / self.dx
        if self.is_global:
            x = x % self.nx
        return x

    def _y(self, lat: float) -> float:
        return (lat - self.lat_min) / self.dy

    def find_point_xy(self, lat: float, lon: float) -> tuple[int, int] | None:
        x = int(round(self._x(lon)))
        y = int(round(self._y(lat)))
        if self.is_global:
            x %= self.nx
        if not (0 <= x < self.nx and 0 <= y < self.ny):
            return None
        return x, y

    def find_point(self, lat: float, lon: float) -> int | None:
        xy = self.find_point_xy(lat, lon)
        if xy is None:
            return None
        x, y = xy
        return y * self.nx + x

    def find_point_interpolated(self, lat: float, lon: float) -> GridPointFraction | None:
        x, y = self._x(lon), self._y(lat)
        x0, y0 = math.floor(x), math.floor(y)
        if not (0 <= x0 < self.nx - 1 and 0 <= y0 < self.ny - 1):
            return None
        return GridPointFraction(y0 * self.nx + x0, x - x0, y - y0)

    def get_coordinates(self, gridpoint: int) -> tuple[float, float]:
        y, x = divmod(gridpoint, self.nx)
        lat = self.lat_min + y * self.dy
        lon = self.lon_min + x * self.dx
        if lon >= 180.0:
            lon -= 360.0
        return lat, lon

    def neighbours(self, gridpoint: int, radius: int = 1) -> list[int]:
        """Cells in the (2r+1)^2 box around ``gridpoint`` that lie on the grid."""
        y, x = divmod(gridpoint, self.nx)
        cells = []
        for dy in range(-radius, radius + 1):
            for dx in range(-radius, radius + 1):
                yy, xx = y + dy, x + dx
                if self.is_global:
                    xx %= self.nx
                if 0 <= yy < self.ny and 0 <= xx < self.nx:
                    cells.append(yy * self.nx + xx)
        return cells
