from __future__ import annotations

import time
from typing import Dict, Optional, Sequence, TypedDict

from .cache import Cache
from .service import station_key


START_TIME = time.time()


class SourceHealth(TypedDict):
    last_update: str
    status: str
    fetch_count: int
    error_count: int


class HealthStatus(TypedDict):
    status: str
    uptime_seconds: int
    stations: Dict[str, SourceHealth]


def _format_age(last_updated: Optional[int], now: int) -> str:
    if not last_updated:
        return "never"
    delta = max(0, now - last_updated)
    return f"{delta}s ago"


def _source_status(
    last_updated: Optional[int],
    last_error_at: Optional[int],
    now: int,
    staleness_warning_sec: int,
    staleness_critical_sec: int,
    polling: bool = True,
) -> str:
    if last_error_at and (last_updated is None or last_error_at >= last_updated):
        return "error"
    if not polling:
        # On-demand fetching only: age is not tracked.
        return "idle" if last_updated is None else "healthy"
    if last_updated is None:
        return "error"
    age = now - last_updated
    if age >= staleness_critical_sec:
        return "error"
    if age >= staleness_warning_sec:
        return "stale"
    return "healthy"


def get_health_status(
    cache: Cache,
    roster: Sequence[str],
    origin: str,
    staleness_warning_sec: int,
    staleness_critical_sec: int,
    now: Optional[int] = None,
    polling: bool = True,
) -> HealthStatus:
    """Summarize per-station freshness from the cache bookkeeping.

    With ``polling`` off nothing refreshes stations in the background, so a
    station is judged only by whether its latest fetch failed.
    """

    current = int(time.time()) if now is None else now
    metadata = cache.get_all_metadata()

    def build_source(code: str) -> SourceHealth:
        entry = metadata.get(station_key(code), {})
        last_updated = entry.get("last_updated")
        last_error_at = entry.get("last_error_at")
        status = _source_status(
            last_updated=last_updated,
            last_error_at=last_error_at,
            now=current,
            staleness_warning_sec=staleness_warning_sec,
            staleness_critical_sec=staleness_critical_sec,
            polling=polling,
        )
        return {
            "last_update": _format_age(last_updated, current),
            "status": status,
            "fetch_count": int(entry.get("fetch_count", 0)),
            "error_count": int(entry.get("error_count", 0)),
        }

    stations = {code: build_source(code) for code in roster}

    overall_status = "healthy"
    origin_health = stations.get(origin)
    if origin_health is not None and origin_health["status"] == "error":
        overall_status = "down"
    elif any(source["status"] not in ("healthy", "idle") for source in stations.values()):
        overall_status = "degraded"

    return {
        "status": overall_status,
        "uptime_seconds": int(current - START_TIME),
        "stations": stations,
    }
