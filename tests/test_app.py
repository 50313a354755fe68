"""Tests for the Flask endpoints."""

from dataclasses import replace
from unittest.mock import Mock

import pytest

from bartroute.app import create_app
from bartroute.cache import Cache
from bartroute.fetchers.bart import UpstreamUnavailable
from bartroute.service import RouteService


@pytest.fixture
def service(settings, station_data, now, clock):
    return RouteService(
        settings,
        cache=Cache(clock=clock),
        fetch_one=Mock(side_effect=lambda code, settings: station_data[code]),
        fetch_many=Mock(return_value=station_data),
        now=lambda: now,
    )


@pytest.fixture
def client(service):
    app = create_app(service)
    app.config["TESTING"] = True
    with app.test_client() as client:
        yield client


def test_station_endpoint_returns_snapshot(client):
    response = client.get("/api/bart/station/embr")

    assert response.status_code == 200
    data = response.get_json()
    assert data["abbreviation"] == "EMBR"
    assert data["etd"][0]["destination"] == "Dublin/Pleasanton"


def test_station_endpoint_rejects_unknown_code(client):
    response = client.get("/api/bart/station/XXXX")
    assert response.status_code == 400
    assert response.get_json() == {"error": "Invalid station code"}


def test_station_endpoint_reports_upstream_outage(client, service):
    service._fetch_one.side_effect = UpstreamUnavailable("No data available from BART for MONT.")

    response = client.get("/api/bart/station/MONT")

    assert response.status_code == 503


def test_board_endpoint(client):
    response = client.get("/api/bart/station/POWL/board")

    assert response.status_code == 200
    assert response.get_json()["trains"]["Dublin/Pleasanton"][0]["minutes"] == 14


def test_route_recommendation_endpoint(client):
    response = client.get("/api/bart/route-recommendation?walkTime=1")

    assert response.status_code == 200
    data = response.get_json()
    assert data["type"] == "transfer"
    assert data["totalTime"] == 7
    assert data["timeSaved"] == 13
    assert data["etaAtDublin"] == "08:45"
    assert [step["station"] for step in data["steps"]] == ["Embarcadero", "Montgomery", "Montgomery"]
    assert data["steps"][2]["waitTimeAtStation"] == 1


@pytest.mark.parametrize("walk", ["-1", "soon"])
def test_route_recommendation_rejects_bad_walk_time(client, walk):
    response = client.get(f"/api/bart/route-recommendation?walkTime={walk}")
    assert response.status_code == 400


def test_route_recommendation_internal_error(client, service):
    service._fetch_many.side_effect = RuntimeError("boom")

    response = client.get("/api/bart/route-recommendation")

    assert response.status_code == 500


def test_all_recommendations_endpoint(client):
    response = client.get("/api/bart/route-recommendations")

    assert response.status_code == 200
    data = response.get_json()
    assert sorted(data, key=int) == [str(walk) for walk in range(1, 11)]
    assert data["10"]["type"] == "direct"
    assert data["10"]["totalTime"] == 20


def test_health_on_demand_service_is_not_down(client):
    before = client.get("/api/health").get_json()
    assert before["status"] == "healthy"
    assert before["stations"]["EMBR"]["status"] == "idle"

    client.get("/api/bart/route-recommendations")
    after = client.get("/health").get_json()

    assert after["status"] == "healthy"
    assert set(after["stations"]) == {"EMBR", "MONT", "POWL", "CIVC"}
    assert after["stations"]["EMBR"]["fetch_count"] == 1


def test_health_judges_staleness_when_prefetching(settings, station_data, now):
    polled = RouteService(
        replace(settings, prefetch_interval_seconds=30),
        fetch_many=Mock(return_value=station_data),
        now=lambda: now,
    )
    app = create_app(polled)

    with app.test_client() as client:
        assert client.get("/api/health").get_json()["status"] == "down"
