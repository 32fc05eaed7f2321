from __future__ import annotations

import json
import logging
import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from models.series import PointRequest, PointSeries

logger = logging.getLogger("gridmix.logger")

_BASE_DIR = Path(__file__).resolve().parent.parent / "data" / "logs"


def _ensure_dir(subdir: str) -> Path:
    path = _BASE_DIR / subdir
    path.mkdir(parents=True, exist_ok=True)
    return path


def _today_str() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def _append_jsonl(subdir: str, record: dict[str, Any]) -> None:
    """Append a single JSON record to today's JSONL file in the given subdirectory."""
    dir_path = _ensure_dir(subdir)
    filepath = dir_path / f"{_today_str()}.jsonl"
    try:
        with open(filepath, "a") as f:
            f.write(json.dumps(record, default=str) + "\n")
    except OSError as exc:
        logger.error("Failed to write log to %s: %s", filepath, exc)


def series_record(series: PointSeries, timestamp: datetime | None = None) -> dict[str, Any]:
    ts = timestamp or datetime.now(timezone.utc)
    return {
        "timestamp": ts.isoformat(),
        "key": series.key,
        "domain": series.domain,
        "model_lat": round(series.model_lat, 4),
        "model_lon": round(series.model_lon, 4),
        "elevation": None if math.isnan(series.elevation) else round(series.elevation, 1),
        "time": str(series.time),
        "steps": len(series.time),
        "columns": series.summary(),
        "incomplete": {k: len(v) for k, v in series.incomplete.items()},
    }


def log_series(series: PointSeries, timestamp: datetime | None = None) -> None:
    """Log a fetched series summary to data/logs/series/."""
    _append_jsonl("series", series_record(series, timestamp))


def log_failure(
    request: PointRequest,
    error: BaseException,
    timestamp: datetime | None = None,
) -> None:
    """Log a failed location to data/logs/failures/."""
    ts = timestamp or datetime.now(timezone.utc)
    record = {
        "timestamp": ts.isoformat(),
        "key": request.key,
        "domain": request.domain,
        "lat": request.lat,
        "lon": request.lon,
        "variables": request.variables,
        "error": type(error).__name__,
        "message": str(error),
    }
    _append_jsonl("failures", record)
