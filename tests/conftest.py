"""
Shared fixtures for the test suite.

Snapshots are built from BART-shaped payloads so the same helpers serve the
fetcher, optimizer and service tests.
"""

from datetime import datetime
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

import pytest

from bartroute.config import Settings
from bartroute.fetchers.bart import parse_station_snapshot
from bartroute.models import StationSnapshot


NAMES = {
    "EMBR": "Embarcadero",
    "MONT": "Montgomery",
    "POWL": "Powell",
    "CIVC": "Civic Center",
}


def etd_payload(code: str, groups: Dict[str, List]) -> dict:
    """Build a BART ETD JSON payload.

    ``groups`` maps a destination name to a list of minutes values or
    (minutes, platform) tuples.
    """
    etd = []
    for destination, trains in groups.items():
        estimates = []
        for train in trains:
            minutes, platform = train if isinstance(train, tuple) else (train, "2")
            estimates.append(
                {
                    "minutes": str(minutes),
                    "platform": platform,
                    "direction": "North",
                    "length": "8",
                    "color": "BLUE",
                    "hexcolor": "#0099cc",
                    "delay": "0",
                }
            )
        etd.append(
            {
                "destination": destination,
                "abbreviation": destination[:4].upper(),
                "limited": "0",
                "estimate": estimates,
            }
        )
    return {"root": {"station": [{"name": NAMES.get(code, code), "abbr": code, "etd": etd}]}}


def snapshot(code: str, groups: Dict[str, List]) -> StationSnapshot:
    return parse_station_snapshot(etd_payload(code, groups), code)


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def now():
    return datetime(2024, 5, 1, 8, 0, tzinfo=ZoneInfo("America/Los_Angeles"))


class FakeClock:
    def __init__(self, start: float = 1_000.0):
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def station_data() -> Dict[str, Optional[StationSnapshot]]:
    """A full roster where a transfer beats the 20-minute direct train."""
    return {
        "EMBR": snapshot(
            "EMBR",
            {
                "Dublin/Pleasanton": [(20, "2"), (35, "2")],
                "Daly City": [(3, "1"), (10, "1")],
                "Richmond": [(6, "2")],
            },
        ),
        "MONT": snapshot("MONT", {"Dublin/Pleasanton": [(7, "1"), (16, "1")]}),
        "POWL": snapshot("POWL", {"Dublin/Pleasanton": [(14, "1")]}),
        "CIVC": snapshot("CIVC", {"Dublin/Pleasanton": [(11, "1")]}),
    }
