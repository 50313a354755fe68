from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, TypedDict


UNKNOWN_MINUTES = 999
DEFAULT_PLATFORM = "1"
DEFAULT_CAR_LENGTH = 10
DEFAULT_DELAY = 0
DEFAULT_COLOR = "BLUE"
DELAY_THRESHOLD_MINUTES = 1

logger = logging.getLogger(__name__)


class RawEstimate(TypedDict, total=False):
    minutes: str
    platform: str
    direction: str
    length: str
    color: str
    hexcolor: str
    delay: str


class RawDestination(TypedDict, total=False):
    destination: str
    abbreviation: str
    estimate: List[RawEstimate]


def _coerce_int(value: Any, fallback: int, field_name: str) -> int:
    if value is None or value == "":
        return fallback
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        logger.debug("Malformed %s value %r; using %s.", field_name, value, fallback)
        return fallback
    if parsed < 0:
        logger.debug("Negative %s value %r; using %s.", field_name, value, fallback)
        return fallback
    return parsed


def _coerce_str(value: Any, fallback: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return fallback


@dataclass(frozen=True)
class ArrivalEstimate:
    destination: str
    minutes: int
    platform: str = DEFAULT_PLATFORM
    cars: int = DEFAULT_CAR_LENGTH
    delay: int = DEFAULT_DELAY
    color: str = DEFAULT_COLOR
    direction: str = ""

    @classmethod
    def from_raw(cls, destination: str, raw: Mapping[str, Any]) -> "ArrivalEstimate":
        """Normalize one untrusted provider record.

        Every field arrives as a string. Anything that does not parse falls back
        to a fixed default instead of raising; an unreadable ``minutes`` value
        (BART sends ``"Leaving"`` for a train at the platform) becomes
        ``UNKNOWN_MINUTES``.
        """

        return cls(
            destination=destination,
            minutes=_coerce_int(raw.get("minutes"), UNKNOWN_MINUTES, "minutes"),
            platform=_coerce_str(raw.get("platform"), DEFAULT_PLATFORM),
            cars=_coerce_int(raw.get("length"), DEFAULT_CAR_LENGTH, "length"),
            delay=_coerce_int(raw.get("delay"), DEFAULT_DELAY, "delay"),
            color=_coerce_str(raw.get("color"), DEFAULT_COLOR).upper(),
            direction=_coerce_str(raw.get("direction"), ""),
        )

    @property
    def status(self) -> str:
        return "delayed" if self.delay > DELAY_THRESHOLD_MINUTES else "on-time"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "destination": self.destination,
            "minutes": self.minutes,
            "platform": self.platform,
            "cars": self.cars,
            "delay": self.delay,
            "color": self.color,
            "direction": self.direction,
            "status": self.status,
        }


@dataclass(frozen=True)
class DestinationGroup:
    destination: str
    abbreviation: str
    estimates: Tuple[ArrivalEstimate, ...]

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "DestinationGroup":
        destination = _coerce_str(raw.get("destination"), "")
        raw_estimates = raw.get("estimate") or []
        if not isinstance(raw_estimates, list):
            raw_estimates = [raw_estimates]
        return cls(
            destination=destination,
            abbreviation=_coerce_str(raw.get("abbreviation"), ""),
            estimates=tuple(
                ArrivalEstimate.from_raw(destination, est)
                for est in raw_estimates
                if isinstance(est, dict)
            ),
        )

    def matches(self, substrings: Iterable[str]) -> bool:
        return any(target in self.destination for target in substrings)


@dataclass(frozen=True)
class StationSnapshot:
    name: str
    code: str
    groups: Tuple[DestinationGroup, ...]

    def estimates_for(self, substrings: Sequence[str]) -> List[ArrivalEstimate]:
        """Return every estimate whose destination contains one of ``substrings``, soonest first."""

        matched = [
            estimate
            for group in self.groups
            if group.matches(substrings)
            for estimate in group.estimates
        ]
        return sorted(matched, key=lambda estimate: estimate.minutes)

    def all_estimates(self) -> List[ArrivalEstimate]:
        return [estimate for group in self.groups for estimate in group.estimates]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "station": self.name,
            "abbreviation": self.code,
            "etd": [
                {
                    "destination": group.destination,
                    "abbreviation": group.abbreviation,
                    "estimate": [estimate.to_dict() for estimate in group.estimates],
                }
                for group in self.groups
            ],
        }


@dataclass(frozen=True)
class RouteStep:
    action: str
    station: str
    platform: Optional[str] = None
    wait_time: Optional[int] = None
    departure_time: Optional[str] = None
    arrival_time: Optional[str] = None
    transfer_time: Optional[int] = None
    wait_time_at_station: Optional[int] = None
    travel_time: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        fields = {
            "action": self.action,
            "station": self.station,
            "platform": self.platform,
            "waitTime": self.wait_time,
            "departureTime": self.departure_time,
            "arrivalTime": self.arrival_time,
            "transferTime": self.transfer_time,
            "waitTimeAtStation": self.wait_time_at_station,
            "travelTime": self.travel_time,
        }
        return {key: value for key, value in fields.items() if value is not None}


@dataclass(frozen=True)
class RouteRecommendation:
    type: str
    total_time: int
    steps: Tuple[RouteStep, ...]
    time_saved: Optional[int] = None
    eta_at_dublin: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.type, "totalTime": self.total_time}
        if self.time_saved is not None:
            payload["timeSaved"] = self.time_saved
        if self.eta_at_dublin is not None:
            payload["etaAtDublin"] = self.eta_at_dublin
        payload["steps"] = [step.to_dict() for step in self.steps]
        return payload
