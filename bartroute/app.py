from __future__ import annotations

import logging
import os
from typing import Any, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from flask import Flask, jsonify, request
from flask_cors import CORS

from .config import load_settings
from .fetchers.bart import UpstreamUnavailable
from .health import get_health_status
from .service import InvalidStationCode, RouteService


logger = logging.getLogger(__name__)


def _parse_walk_time(raw: Optional[str]) -> Optional[int]:
    if raw is None or raw == "":
        return None
    value = int(raw)
    if value < 0:
        raise ValueError("walkTime must be non-negative.")
    return value


def create_app(service: Optional[RouteService] = None) -> Flask:
    if service is None:
        service = RouteService(load_settings())

    app = Flask(__name__)
    CORS(app)
    app.config["ROUTE_SERVICE"] = service

    @app.route("/api/bart/station/<code>")
    def api_station(code: str) -> Any:
        try:
            snapshot = service.get_station_snapshot(code)
        except InvalidStationCode:
            return jsonify({"error": "Invalid station code"}), 400
        except UpstreamUnavailable as exc:
            logger.warning("Station %s unavailable: %s", code, exc)
            return jsonify({"error": "No data available from BART API"}), 503
        except Exception as exc:
            logger.error("Error fetching BART station data for %s: %s", code, exc)
            return jsonify({"error": "Failed to fetch station data"}), 500
        return jsonify(snapshot.to_dict())

    @app.route("/api/bart/station/<code>/board")
    def api_station_board(code: str) -> Any:
        try:
            board = service.get_departure_board(code)
        except InvalidStationCode:
            return jsonify({"error": "Invalid station code"}), 400
        except UpstreamUnavailable as exc:
            logger.warning("Station %s unavailable: %s", code, exc)
            return jsonify({"error": "No data available from BART API"}), 503
        except Exception as exc:
            logger.error("Error building departure board for %s: %s", code, exc)
            return jsonify({"error": "Failed to fetch station data"}), 500
        return jsonify(board)

    @app.route("/api/bart/route-recommendation")
    def api_route_recommendation() -> Any:
        try:
            walk = _parse_walk_time(request.args.get("walkTime"))
        except ValueError:
            return jsonify({"error": "walkTime must be a non-negative integer"}), 400
        try:
            recommendation = service.get_route_recommendation(walk)
        except Exception as exc:
            logger.error("Error calculating route recommendation: %s", exc)
            return jsonify({"error": "Failed to calculate route recommendation"}), 500
        return jsonify(recommendation.to_dict())

    @app.route("/api/bart/route-recommendations")
    def api_all_route_recommendations() -> Any:
        try:
            recommendations = service.get_all_route_recommendations()
        except Exception as exc:
            logger.error("Error calculating route recommendations: %s", exc)
            return jsonify({"error": "Failed to calculate route recommendations"}), 500
        return jsonify(
            {str(walk): recommendation.to_dict() for walk, recommendation in recommendations.items()}
        )

    @app.route("/health")
    def health_alias() -> Any:
        return api_health()

    @app.route("/api/health")
    def api_health() -> Any:
        settings = service.settings
        status = get_health_status(
            service.cache,
            settings.roster,
            settings.origin,
            settings.staleness_warning_sec,
            settings.staleness_critical_sec,
            polling=settings.prefetch_interval_seconds > 0,
        )
        return jsonify(status)

    return app


def _prefetch_task(service: RouteService) -> None:
    try:
        service.refresh()
    except Exception as exc:
        logger.error("Route prefetch failed: %s", exc)


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    try:
        settings = load_settings()
    except Exception as exc:
        logger.error("Failed to load config: %s", exc)
        return

    service = RouteService(settings)
    app = create_app(service)

    interval = settings.prefetch_interval_seconds
    if interval > 0:
        logger.info("Starting background scheduler...")
        scheduler = BackgroundScheduler()
        scheduler.add_job(_prefetch_task, "interval", seconds=interval, args=[service])
        scheduler.start()
        logger.info("Fetching initial route recommendations...")
        _prefetch_task(service)
        logger.info("Scheduler started: BART every %ss", interval)

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "5000"))
    logger.info("Flask server starting on http://%s:%s", host, port)
    app.run(host=host, port=port)


if __name__ == "__main__":
    main()
