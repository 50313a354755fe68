from __future__ import annotations

from typing import Any, Dict, List, TypedDict

from .config import Settings
from .models import StationSnapshot


# Destinations that run toward the downtown San Francisco core.
CITY_BOUND_DESTINATIONS = (
    "Montgomery",
    "Powell",
    "Civic Center",
    "16th St Mission",
    "24th St Mission",
    "Glen Park",
)


class DepartureBoard(TypedDict):
    station: str
    abbreviation: str
    trains: Dict[str, List[Dict[str, Any]]]


def build_departure_board(snapshot: StationSnapshot, settings: Settings) -> DepartureBoard:
    destination_trains: List[Dict[str, Any]] = []
    city_bound: List[Dict[str, Any]] = []
    outbound: List[Dict[str, Any]] = []

    for group in snapshot.groups:
        if group.matches(settings.destinations):
            bucket = destination_trains
        elif group.matches(CITY_BOUND_DESTINATIONS):
            bucket = city_bound
        else:
            bucket = outbound
        bucket.extend(estimate.to_dict() for estimate in group.estimates)

    for bucket in (destination_trains, city_bound, outbound):
        bucket.sort(key=lambda train: train["minutes"])

    return {
        "station": snapshot.name,
        "abbreviation": snapshot.code,
        "trains": {
            settings.destination_label: destination_trains,
            "City-bound": city_bound,
            "Outbound": outbound,
        },
    }
