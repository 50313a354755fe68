from __future__ import annotations

import argparse
import logging
import sys
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo

import requests

from ..board import build_departure_board
from ..config import Settings, load_settings
from ..models import DestinationGroup, StationSnapshot
from ..optimizer import recommend_route


logger = logging.getLogger(__name__)

StationData = Dict[str, Optional[StationSnapshot]]


class UpstreamUnavailable(RuntimeError):
    pass


def fetch_station_payload(code: str, settings: Settings) -> Dict[str, Any]:
    params = {
        "cmd": "etd",
        "orig": code,
        "key": settings.api_key,
        "json": "y",
    }
    try:
        response = requests.get(
            settings.api_base,
            params=params,
            timeout=settings.request_timeout_seconds,
        )
        if response.status_code in {401, 403}:
            logger.error(
                "BART request unauthorized for %s (HTTP %s).",
                code,
                response.status_code,
            )
        response.raise_for_status()
        payload = response.json()
    except requests.RequestException as exc:
        raise UpstreamUnavailable(f"Failed to fetch ETD for {code}: {exc}") from exc
    except ValueError as exc:
        raise UpstreamUnavailable(f"ETD response for {code} was not valid JSON.") from exc
    if not isinstance(payload, dict):
        raise UpstreamUnavailable(f"ETD response for {code} was not a JSON object.")
    return payload


def parse_station_snapshot(payload: Dict[str, Any], code: str) -> StationSnapshot:
    root = payload.get("root")
    stations = root.get("station") if isinstance(root, dict) else None
    if not isinstance(stations, list) or not stations or not isinstance(stations[0], dict):
        raise UpstreamUnavailable(f"No data available from BART for {code}.")

    station = stations[0]
    raw_groups = station.get("etd") or []
    if not isinstance(raw_groups, list):
        raw_groups = []
    name = station.get("name")
    abbr = station.get("abbr")
    return StationSnapshot(
        name=name if isinstance(name, str) and name else code,
        code=abbr.upper() if isinstance(abbr, str) and abbr else code,
        groups=tuple(
            DestinationGroup.from_raw(group) for group in raw_groups if isinstance(group, dict)
        ),
    )


def fetch_station_snapshot(code: str, settings: Settings) -> StationSnapshot:
    payload = fetch_station_payload(code, settings)
    return parse_station_snapshot(payload, code)


def _safe_fetch(code: str, settings: Settings) -> Optional[StationSnapshot]:
    try:
        return fetch_station_snapshot(code, settings)
    except UpstreamUnavailable as exc:
        logger.warning("%s", exc)
    except Exception as exc:
        logger.error("Unexpected error while fetching %s: %s", code, exc)
    return None


def fetch_station_snapshots(
    codes: Sequence[str],
    settings: Settings,
    batch_timeout_seconds: Optional[float] = None,
) -> StationData:
    """Fetch every station concurrently; failed or late stations map to ``None``."""

    timeout = settings.batch_timeout_seconds if batch_timeout_seconds is None else batch_timeout_seconds
    results: StationData = {code: None for code in codes}
    if not codes:
        return results

    executor = ThreadPoolExecutor(max_workers=len(codes), thread_name_prefix="bart-etd")
    try:
        futures: Dict[Future, str] = {
            executor.submit(_safe_fetch, code, settings): code for code in codes
        }
        done, pending = wait(futures, timeout=timeout)
        for future in done:
            results[futures[future]] = future.result()
        for future in pending:
            future.cancel()
            logger.warning(
                "ETD fetch for %s did not finish within %ss; treating as unavailable.",
                futures[future],
                timeout,
            )
    finally:
        executor.shutdown(wait=False)

    fetched = sum(1 for snapshot in results.values() if snapshot is not None)
    logger.info("BART: Fetched %s/%s stations", fetched, len(codes))
    return results


def _render_output(settings: Settings, station_data: StationData, walk: int) -> str:
    now = datetime.now(ZoneInfo(settings.timezone))
    output_lines: List[str] = []
    output_lines.append("━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━")
    for code in settings.roster:
        snapshot = station_data.get(code)
        output_lines.append(f"{settings.station_name(code).upper()} ({code})")
        if snapshot is None:
            output_lines.append("  (no data)")
            output_lines.append("")
            continue
        board = build_departure_board(snapshot, settings)
        for label, trains in board["trains"].items():
            output_lines.append(f"  {label}:")
            if not trains:
                output_lines.append("    (no upcoming trains)")
                continue
            for train in trains:
                output_lines.append(
                    f"    {train['destination']} → {train['minutes']} min "
                    f"(platform {train['platform']}, {train['cars']} cars, {train['status']})"
                )
        output_lines.append("")

    output_lines.append("━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━")
    recommendation = recommend_route(station_data, walk, settings, now)
    output_lines.append(
        f"Recommendation ({walk} min walk): {recommendation.type.upper()}, "
        f"board in {recommendation.total_time} min"
    )
    if recommendation.eta_at_dublin:
        output_lines.append(f"ETA at {settings.destination_label}: {recommendation.eta_at_dublin}")
    for idx, step in enumerate(recommendation.steps, start=1):
        detail = f" (platform {step.platform})" if step.platform else ""
        output_lines.append(f"  {idx}. {step.action} at {step.station}{detail}")
    return "\n".join(output_lines)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Fetch BART departures and recommend a route.")
    parser.add_argument(
        "--walk",
        type=int,
        default=None,
        help="Minutes needed to reach the origin platform.",
    )
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    try:
        settings = load_settings()
    except (OSError, ValueError) as exc:
        print(f"[ERROR] {exc}")
        return 1

    walk = settings.default_walk_minutes if args.walk is None else max(0, args.walk)
    try:
        station_data = fetch_station_snapshots(settings.roster, settings)
        print(_render_output(settings, station_data, walk))
    except KeyboardInterrupt:
        print("\n[ERROR] Interrupted by user.")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
