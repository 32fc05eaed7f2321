"""
Time ranges and per-request settings.

Timestamps are integer Unix seconds (UTC).  A ``TimeRange`` is half open:
``start`` is included, ``end`` is not.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone

import numpy as np

SECONDS_PER_YEAR = 365.25 * 86400


@dataclass(frozen=True)
class TimeRange:
    start: int
    end: int
    dt_seconds: int

    def __post_init__(self) -> None:
        if self.dt_seconds <= 0:
            raise ValueError(f"dt_seconds must be positive, got {self.dt_seconds}")
        if self.end < self.start:
            raise ValueError(f"end ({self.end}) before start ({self.start})")

    @classmethod
    def from_datetimes(cls, start: datetime, end: datetime, dt_seconds: int) -> TimeRange:
        return cls(int(start.timestamp()), int(end.timestamp()), dt_seconds)

    @property
    def count(self) -> int:
        return -(-(self.end - self.start) // self.dt_seconds)

    def __len__(self) -> int:
        return self.count

    def timestamps(self) -> np.ndarray:
        return self.start + np.arange(self.count, dtype=np.int64) * self.dt_seconds

    def with_dt(self, dt_seconds: int) -> TimeRange:
        return replace(self, dt_seconds=dt_seconds)

    def fraction_of_year(self) -> np.ndarray:
        """Position of each sample within an average year, in [0, 1)."""
        return np.mod(self.timestamps() / SECONDS_PER_YEAR, 1.0)

    def day_of_year(self) -> np.ndarray:
        return np.array(
            [
                datetime.fromtimestamp(int(t), tz=timezone.utc).timetuple().tm_yday
                for t in self.timestamps()
            ],
            dtype=np.int64,
        )

    def __str__(self) -> str:
        start = datetime.fromtimestamp(self.start, tz=timezone.utc).isoformat()
        end = datetime.fromtimestamp(self.end, tz=timezone.utc).isoformat()
        return f"{start}..{end} dt={self.dt_seconds}s"


@dataclass(frozen=True)
class TimeSettings:
    """A time range plus rendering options that some derived variables need."""

    time: TimeRange
    tilt: float = 0.0  # panel tilt in degrees, 0 = horizontal
    azimuth: float = 0.0  # panel azimuth, 0 = south, -90 = east, 90 = west

    @property
    def dt_seconds(self) -> int:
        return self.time.dt_seconds

    def __len__(self) -> int:
        return self.time.count
