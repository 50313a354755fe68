from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml


ROOT_DIR = Path(__file__).resolve().parents[1]
CONFIG_PATH = Path(os.environ.get("BARTROUTE_CONFIG", ROOT_DIR / "config.yaml"))

BART_API_BASE = "https://api.bart.gov/api/etd.aspx"
# BART's public validation key.
BART_PUBLIC_API_KEY = "MW9S-E7SL-26DU-VV8V"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StationConfig:
    code: str
    name: str
    minutes_from_previous: int
    transfer: bool


@dataclass(frozen=True)
class TransferStation:
    code: str
    name: str
    travel_minutes: int


DEFAULT_STATIONS: Tuple[StationConfig, ...] = (
    StationConfig(code="EMBR", name="Embarcadero", minutes_from_previous=0, transfer=False),
    StationConfig(code="MONT", name="Montgomery", minutes_from_previous=1, transfer=True),
    StationConfig(code="POWL", name="Powell", minutes_from_previous=1, transfer=True),
    StationConfig(code="CIVC", name="Civic Center", minutes_from_previous=2, transfer=True),
)


@dataclass(frozen=True)
class Settings:
    api_base: str = BART_API_BASE
    api_key: str = BART_PUBLIC_API_KEY
    request_timeout_seconds: int = 10
    batch_timeout_seconds: int = 15
    origin: str = "EMBR"
    destinations: Tuple[str, ...] = ("Dublin", "Pleasanton")
    reverse_destinations: Tuple[str, ...] = ("Daly", "Millbrae", "Richmond", "Fremont")
    transfer_buffer_minutes: int = 2
    corridor_minutes: int = 38
    default_walk_minutes: int = 5
    walk_time_range: Tuple[int, int] = (1, 10)
    timezone: str = "America/Los_Angeles"
    stations: Tuple[StationConfig, ...] = field(default=DEFAULT_STATIONS)
    cache_ttl_seconds: int = 30
    prefetch_interval_seconds: int = 0
    staleness_warning_sec: int = 60
    staleness_critical_sec: int = 120

    @property
    def roster(self) -> List[str]:
        return [station.code for station in self.stations]

    @property
    def walk_times(self) -> range:
        low, high = self.walk_time_range
        return range(low, high + 1)

    @property
    def destination_label(self) -> str:
        return "/".join(self.destinations)

    def station_name(self, code: str) -> str:
        for station in self.stations:
            if station.code == code:
                return station.name
        return code

    def transfer_stations(self) -> List[TransferStation]:
        """Return transfer candidates in roster order with cumulative travel time from the origin.

        Travel time accumulates the pairwise minutes between adjacent roster
        stations, counted from the origin's position in the roster.
        """

        codes = self.roster
        if self.origin not in codes:
            return []
        start = codes.index(self.origin)
        results: List[TransferStation] = []
        elapsed = 0
        for station in self.stations[start + 1 :]:
            elapsed += station.minutes_from_previous
            if station.transfer:
                results.append(
                    TransferStation(code=station.code, name=station.name, travel_minutes=elapsed)
                )
        return results


def load_config(config_path: Path = CONFIG_PATH) -> dict:
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    logger.info("Loading config from %s", config_path)
    with config_path.open() as handle:
        data = yaml.safe_load(handle)
    if not isinstance(data, dict):
        raise ValueError("Config root must be a mapping.")
    return data


def _safe_int(value: Any, fallback: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return fallback


def _section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = config.get(name, {})
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ValueError(f"Config section '{name}' must be a mapping.")
    return section


def _string_list(value: Any, name: str, fallback: Tuple[str, ...]) -> Tuple[str, ...]:
    if value is None:
        return fallback
    if not isinstance(value, list):
        raise ValueError(f"{name} must be a list.")
    cleaned = tuple(str(item).strip() for item in value if str(item).strip())
    if not cleaned:
        raise ValueError(f"{name} cannot be empty.")
    return cleaned


def _parse_stations(raw: Any, origin: str) -> Tuple[StationConfig, ...]:
    if raw is None:
        return DEFAULT_STATIONS
    if not isinstance(raw, list) or not raw:
        raise ValueError("stations must be a non-empty list.")
    stations: List[StationConfig] = []
    seen = set()
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValueError("Each station entry must be a mapping.")
        code = entry.get("code")
        if not isinstance(code, str) or not code.strip():
            raise ValueError("Station entry missing code.")
        code = code.strip().upper()
        if code in seen:
            raise ValueError(f"Duplicate station code {code}.")
        seen.add(code)
        name = entry.get("name")
        name_value = name.strip() if isinstance(name, str) and name.strip() else code
        minutes = max(0, _safe_int(entry.get("minutes_from_previous", 0), 0))
        transfer = entry.get("transfer", code != origin)
        stations.append(
            StationConfig(
                code=code,
                name=name_value,
                minutes_from_previous=minutes,
                transfer=bool(transfer) and code != origin,
            )
        )
    if origin not in seen:
        raise ValueError(f"Origin station {origin} is not in the station roster.")
    return tuple(stations)


def _parse_walk_range(value: Any) -> Tuple[int, int]:
    if value is None:
        return (1, 10)
    if not isinstance(value, list) or len(value) != 2:
        raise ValueError("route.walk_time_range must be a [low, high] pair.")
    low = max(0, _safe_int(value[0], 1))
    high = max(low, _safe_int(value[1], 10))
    return (low, high)


def parse_settings(config: Dict[str, Any]) -> Settings:
    bart = _section(config, "bart")
    route = _section(config, "route")
    cache = _section(config, "cache")
    display = _section(config, "display")
    defaults = Settings()

    api_key = os.environ.get("BART_API_KEY") or bart.get("api_key") or defaults.api_key
    origin = str(route.get("origin", defaults.origin)).strip().upper()

    warning = max(0, _safe_int(display.get("staleness_warning_sec", 60), 60))
    critical = max(0, _safe_int(display.get("staleness_critical_sec", 120), 120))
    if critical < warning:
        critical = warning

    return Settings(
        api_base=str(bart.get("api_base") or defaults.api_base),
        api_key=str(api_key),
        request_timeout_seconds=max(1, _safe_int(bart.get("request_timeout_seconds", 10), 10)),
        batch_timeout_seconds=max(1, _safe_int(bart.get("batch_timeout_seconds", 15), 15)),
        origin=origin,
        destinations=_string_list(route.get("destinations"), "route.destinations", defaults.destinations),
        reverse_destinations=_string_list(
            route.get("reverse_destinations"),
            "route.reverse_destinations",
            defaults.reverse_destinations,
        ),
        transfer_buffer_minutes=max(0, _safe_int(route.get("transfer_buffer_minutes", 2), 2)),
        corridor_minutes=max(0, _safe_int(route.get("corridor_minutes", 38), 38)),
        default_walk_minutes=max(0, _safe_int(route.get("default_walk_minutes", 5), 5)),
        walk_time_range=_parse_walk_range(route.get("walk_time_range")),
        timezone=str(route.get("timezone") or defaults.timezone),
        stations=_parse_stations(config.get("stations"), origin),
        cache_ttl_seconds=max(1, _safe_int(cache.get("ttl_seconds", 30), 30)),
        prefetch_interval_seconds=max(0, _safe_int(cache.get("prefetch_interval_seconds", 0), 0)),
        staleness_warning_sec=warning,
        staleness_critical_sec=critical,
    )


def load_settings(config_path: Optional[Path] = None) -> Settings:
    return parse_settings(load_config(config_path or CONFIG_PATH))
