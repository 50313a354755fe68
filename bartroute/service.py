from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, Optional, Sequence
from zoneinfo import ZoneInfo

from .board import DepartureBoard, build_departure_board
from .cache import Cache
from .config import Settings
from .fetchers.bart import (
    StationData,
    UpstreamUnavailable,
    fetch_station_snapshot,
    fetch_station_snapshots,
)
from .models import RouteRecommendation, StationSnapshot
from .optimizer import recommend_all_routes, recommend_route


logger = logging.getLogger(__name__)

ALL_RECOMMENDATIONS_KEY = "all_route_recommendations"

SingleFetcher = Callable[[str, Settings], StationSnapshot]
BatchFetcher = Callable[[Sequence[str], Settings], StationData]


class InvalidStationCode(ValueError):
    pass


def station_key(code: str) -> str:
    return f"station:{code}"


def recommendation_key(walk_time_minutes: int) -> str:
    return f"route_recommendation:{walk_time_minutes}"


class RouteService:
    """Serves snapshots and recommendations, memoized in a per-instance cache."""

    def __init__(
        self,
        settings: Settings,
        cache: Optional[Cache] = None,
        fetch_one: SingleFetcher = fetch_station_snapshot,
        fetch_many: BatchFetcher = fetch_station_snapshots,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.settings = settings
        self.cache = cache if cache is not None else Cache(settings.cache_ttl_seconds)
        self._fetch_one = fetch_one
        self._fetch_many = fetch_many
        self._now = now or (lambda: datetime.now(ZoneInfo(settings.timezone)))

    def _validate_code(self, code: str) -> str:
        normalized = (code or "").strip().upper()
        if normalized not in self.settings.roster:
            raise InvalidStationCode(f"Invalid station code: {code}")
        return normalized

    def get_station_snapshot(self, code: str) -> StationSnapshot:
        normalized = self._validate_code(code)
        key = station_key(normalized)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Cache hit for %s", key)
            return cached

        try:
            snapshot = self._fetch_one(normalized, self.settings)
        except UpstreamUnavailable as exc:
            self.cache.record_error(key, str(exc))
            raise
        self.cache.set(key, snapshot)
        return snapshot

    def get_departure_board(self, code: str) -> DepartureBoard:
        return build_departure_board(self.get_station_snapshot(code), self.settings)

    def _fetch_all(self) -> StationData:
        station_data = self._fetch_many(self.settings.roster, self.settings)
        for code in self.settings.roster:
            snapshot = station_data.get(code)
            if snapshot is None:
                self.cache.record_error(station_key(code), "No data available from BART.")
            else:
                self.cache.set(station_key(code), snapshot)
        return station_data

    def get_route_recommendation(self, walk_time_minutes: Optional[int] = None) -> RouteRecommendation:
        walk = self.settings.default_walk_minutes if walk_time_minutes is None else walk_time_minutes
        walk = max(0, int(walk))
        key = recommendation_key(walk)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        batch = self.cache.get(ALL_RECOMMENDATIONS_KEY)
        if batch is not None and walk in batch:
            return batch[walk]

        station_data = self._fetch_all()
        recommendation = recommend_route(station_data, walk, self.settings, self._now())
        self.cache.set(key, recommendation)
        logger.info(
            "Route: %s recommendation for %s min walk (board in %s min)",
            recommendation.type,
            walk,
            recommendation.total_time,
        )
        return recommendation

    def get_all_route_recommendations(self) -> Dict[int, RouteRecommendation]:
        cached = self.cache.get(ALL_RECOMMENDATIONS_KEY)
        if cached is not None:
            return cached
        return self.refresh()

    def refresh(self) -> Dict[int, RouteRecommendation]:
        station_data = self._fetch_all()
        recommendations = recommend_all_routes(station_data, self.settings, self._now())
        self.cache.set(ALL_RECOMMENDATIONS_KEY, recommendations)
        logger.info("Route: Computed %s recommendations", len(recommendations))
        return recommendations
