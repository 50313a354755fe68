"""Tests for the expiring cache."""

import threading

from bartroute.cache import Cache


def test_value_available_until_ttl_elapses(clock):
    cache = Cache(clock=clock)
    cache.set("station:EMBR", {"minutes": 5}, ttl_seconds=30)

    clock.advance(29)
    assert cache.get("station:EMBR") == {"minutes": 5}

    clock.advance(1)
    assert cache.get("station:EMBR") is None


def test_expired_entry_stays_evicted(clock):
    cache = Cache(default_ttl_seconds=10, clock=clock)
    cache.set("route_recommendation:5", "direct")
    clock.advance(10)

    assert cache.get("route_recommendation:5") is None
    clock.value -= 10
    assert cache.get("route_recommendation:5") is None


def test_keys_expire_independently(clock):
    cache = Cache(clock=clock)
    cache.set("station:EMBR", "a", ttl_seconds=5)
    cache.set("all_route_recommendations", "b", ttl_seconds=60)

    clock.advance(6)

    assert cache.get("station:EMBR") is None
    assert cache.get("all_route_recommendations") == "b"


def test_last_write_wins(clock):
    cache = Cache(clock=clock)
    cache.set("k", 1)
    cache.set("k", 2)
    assert cache.get("k") == 2


def test_returned_values_are_copies(clock):
    cache = Cache(clock=clock)
    original = {1: ["direct"]}
    cache.set("k", original)
    original[1].append("mutated")

    first = cache.get("k")
    first[1].append("again")

    assert cache.get("k") == {1: ["direct"]}


def test_metadata_tracks_fetches_and_errors(clock):
    cache = Cache(clock=clock)
    cache.record_error("station:MONT", "timeout")
    cache.set("station:MONT", "ok")
    cache.record_error("station:MONT", "HTTP 503")

    meta = cache.get_all_metadata()["station:MONT"]

    assert meta["fetch_count"] == 1
    assert meta["error_count"] == 2
    assert meta["last_error"] == "HTTP 503"
    assert meta["last_updated"] == 1000


def test_metadata_survives_eviction(clock):
    cache = Cache(default_ttl_seconds=1, clock=clock)
    cache.set("station:EMBR", "ok")
    clock.advance(5)
    assert cache.get("station:EMBR") is None
    assert cache.get_all_metadata()["station:EMBR"]["fetch_count"] == 1


def test_concurrent_writers_and_readers():
    cache = Cache(default_ttl_seconds=60)

    def worker(n: int) -> None:
        for i in range(200):
            cache.set(f"k{i % 5}", n)
            cache.get(f"k{(i + 1) % 5}")

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    for i in range(5):
        assert cache.get(f"k{i}") in range(8)
    assert sum(meta["fetch_count"] for meta in cache.get_all_metadata().values()) == 1600
