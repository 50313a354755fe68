from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Mapping, Optional
from zoneinfo import ZoneInfo

from .config import Settings, TransferStation
from .models import (
    UNKNOWN_MINUTES,
    ArrivalEstimate,
    RouteRecommendation,
    RouteStep,
    StationSnapshot,
)


logger = logging.getLogger(__name__)

StationData = Mapping[str, Optional[StationSnapshot]]


@dataclass(frozen=True)
class TransferOption:
    station: TransferStation
    reverse_train: ArrivalEstimate
    local_train: ArrivalEstimate
    arrival_minutes: int

    @property
    def total_time(self) -> int:
        # Minutes from now until boarding the final train, not a sum of legs.
        return self.local_train.minutes


def calculate_departure_time(minutes: int, now: datetime, timezone: str) -> str:
    if minutes == 0:
        return "Leaving"
    departure = now + timedelta(minutes=minutes)
    return departure.astimezone(ZoneInfo(timezone)).strftime("%H:%M")


def _infeasible(settings: Settings, action: str) -> RouteRecommendation:
    return RouteRecommendation(
        type="direct",
        total_time=UNKNOWN_MINUTES,
        steps=(RouteStep(action=action, station=settings.station_name(settings.origin)),),
    )


def _first_catchable(trains: List[ArrivalEstimate], ready_minutes: int) -> Optional[ArrivalEstimate]:
    for train in trains:
        if train.minutes >= ready_minutes:
            return train
    return None


def find_best_transfer(
    station_data: StationData,
    reverse_trains: List[ArrivalEstimate],
    walk_time_minutes: int,
    settings: Settings,
) -> Optional[TransferOption]:
    """Return the transfer option with the earliest final boarding time, if any.

    Reverse trains departing at or before ``walk_time_minutes``, or with no
    usable estimate, never produce an option. Ties keep the first option found,
    scanning transfer stations in roster order.
    """

    best: Optional[TransferOption] = None
    buffer = settings.transfer_buffer_minutes
    for station in settings.transfer_stations():
        snapshot = station_data.get(station.code)
        if snapshot is None:
            continue
        local_trains = snapshot.estimates_for(settings.destinations)
        if not local_trains:
            continue
        for reverse_train in reverse_trains:
            if not walk_time_minutes < reverse_train.minutes < UNKNOWN_MINUTES:
                continue
            arrival = reverse_train.minutes + station.travel_minutes
            local_train = _first_catchable(local_trains, arrival + buffer)
            if local_train is None:
                continue
            option = TransferOption(
                station=station,
                reverse_train=reverse_train,
                local_train=local_train,
                arrival_minutes=arrival,
            )
            if best is None or option.total_time < best.total_time:
                best = option
    return best


def _direct_recommendation(
    train: ArrivalEstimate,
    settings: Settings,
    now: datetime,
) -> RouteRecommendation:
    tz = settings.timezone
    return RouteRecommendation(
        type="direct",
        total_time=train.minutes,
        eta_at_dublin=calculate_departure_time(train.minutes + settings.corridor_minutes, now, tz),
        steps=(
            RouteStep(
                action=f"Take direct {settings.destination_label} train",
                station=settings.station_name(settings.origin),
                platform=train.platform,
                wait_time=train.minutes,
                departure_time=calculate_departure_time(train.minutes, now, tz),
            ),
        ),
    )


def _transfer_recommendation(
    option: TransferOption,
    direct_train: ArrivalEstimate,
    settings: Settings,
    now: datetime,
) -> RouteRecommendation:
    tz = settings.timezone
    buffer = settings.transfer_buffer_minutes
    reverse = option.reverse_train
    local = option.local_train
    wait_at_station = max(0, local.minutes - option.arrival_minutes - buffer)
    return RouteRecommendation(
        type="transfer",
        total_time=option.total_time,
        time_saved=direct_train.minutes - option.total_time,
        eta_at_dublin=calculate_departure_time(option.total_time + settings.corridor_minutes, now, tz),
        steps=(
            RouteStep(
                action=f"Take {reverse.destination} train",
                station=settings.station_name(settings.origin),
                platform=reverse.platform,
                wait_time=reverse.minutes,
                departure_time=calculate_departure_time(reverse.minutes, now, tz),
                travel_time=option.station.travel_minutes,
            ),
            RouteStep(
                action="Transfer",
                station=option.station.name,
                arrival_time=calculate_departure_time(option.arrival_minutes, now, tz),
                transfer_time=buffer,
            ),
            RouteStep(
                action=f"Take {local.destination} train",
                station=option.station.name,
                platform=local.platform,
                wait_time=local.minutes,
                departure_time=calculate_departure_time(local.minutes, now, tz),
                wait_time_at_station=wait_at_station,
            ),
        ),
    )


def recommend_route(
    station_data: StationData,
    walk_time_minutes: int,
    settings: Settings,
    now: datetime,
) -> RouteRecommendation:
    """Pick the fastest way from the origin onto a destination-pair train.

    ``now`` is only used to render wall-clock times, so identical inputs give
    identical recommendations.
    """

    walk = max(0, int(walk_time_minutes))
    origin = station_data.get(settings.origin)
    if origin is None:
        logger.warning("No data for origin station %s.", settings.origin)
        return _infeasible(settings, "Error: Unable to fetch train data")

    direct_trains = [
        train
        for train in origin.estimates_for(settings.destinations)
        if walk < train.minutes < UNKNOWN_MINUTES
    ]
    if not direct_trains:
        return _infeasible(
            settings,
            f"No {settings.destination_label} trains departing after a {walk}-minute walk",
        )
    next_direct = direct_trains[0]

    reverse_trains = origin.estimates_for(settings.reverse_destinations)
    best = find_best_transfer(station_data, reverse_trains, walk, settings)

    if best is not None and best.total_time < next_direct.minutes:
        logger.debug(
            "Transfer via %s boards at %s min vs direct %s min.",
            best.station.code,
            best.total_time,
            next_direct.minutes,
        )
        return _transfer_recommendation(best, next_direct, settings, now)
    return _direct_recommendation(next_direct, settings, now)


def recommend_all_routes(
    station_data: StationData,
    settings: Settings,
    now: datetime,
    walk_times: Optional[Iterable[int]] = None,
) -> Dict[int, RouteRecommendation]:
    times = settings.walk_times if walk_times is None else walk_times
    return {walk: recommend_route(station_data, walk, settings, now) for walk in times}
