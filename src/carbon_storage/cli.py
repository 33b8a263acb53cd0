"""Command-line utilities for carbon_storage."""

from __future__ import annotations

import argparse
import json
import logging
import logging.handlers
import sys
from datetime import date
from pathlib import Path

from .earthengine import (
    ComputeJobPoller,
    ServiceAccountCredential,
    TokenExchanger,
    fetch_ndvi_time_series,
)
from .errors import CarbonStorageError, ConfigurationError, InvalidInputError
from .geometry import compute_area_hectares, ring_from_geojson
from .logging_setup import (
    BoundedQueueHandler,
    configure_structured_logging,
    shutdown_listeners,
)
from .service import build_service, failure_response
from .settings import get_settings
from .signal_provider import SIGNAL_SOURCES
from .store import NdjsonCalculationStore
from .tiles import DEFAULT_MONTH, DEFAULT_YEAR, TileServerClient

PACKAGE_LOGGER = "carbon_storage"


def _read_stdin() -> str | None:
    """Read the request payload from stdin if something is piped in."""
    try:
        if sys.stdin and not sys.stdin.isatty():
            return sys.stdin.read()
    except OSError as e:
        print(f"Error reading stdin: {e}", file=sys.stderr)
    return None


def _read_input(path: str | None) -> str:
    """Return the raw JSON text from ``path`` or stdin."""
    if path:
        return Path(path).read_text(encoding="utf-8")
    payload = _read_stdin()
    if payload:
        return payload
    raise InvalidInputError("No input provided. Use --input or pipe JSON via stdin.")


def _print_json(payload: object) -> None:
    print(json.dumps(payload, separators=(",", ":"), default=str))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="carbon-storage",
        description="Estimate vegetation carbon storage for a polygon.",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Emit structured JSON logs on stderr.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log at DEBUG level.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    calculate = subparsers.add_parser(
        "calculate", help="Run a carbon calculation request."
    )
    calculate.add_argument(
        "--input",
        "-i",
        help="Path to the request JSON. If omitted, reads from stdin.",
    )
    calculate.add_argument(
        "--source",
        choices=SIGNAL_SOURCES,
        help="Vegetation signal source (defaults to CARBON_STORAGE_SIGNAL_SOURCE).",
    )
    calculate.add_argument(
        "--ledger",
        help="Append the calculation to this NDJSON file.",
    )

    area = subparsers.add_parser("area", help="Print the area of a GeoJSON polygon.")
    area.add_argument(
        "--input",
        "-i",
        help="Path to a GeoJSON polygon. If omitted, reads from stdin.",
    )

    timeseries = subparsers.add_parser(
        "timeseries", help="Fetch the NDVI time series at a point."
    )
    timeseries.add_argument("--lon", type=float, required=True)
    timeseries.add_argument("--lat", type=float, required=True)
    timeseries.add_argument("--start", type=date.fromisoformat, required=True)
    timeseries.add_argument("--end", type=date.fromisoformat, required=True)

    subparsers.add_parser("datasets", help="List the tile server datasets.")

    tile_url = subparsers.add_parser(
        "tile-url", help="Print the tile URL template for a dataset."
    )
    tile_url.add_argument("--dataset", required=True)
    tile_url.add_argument("--year", type=int, default=DEFAULT_YEAR)
    tile_url.add_argument("--month", type=int, default=DEFAULT_MONTH)

    verify = subparsers.add_parser(
        "verify-ledger", help="Check the hash chain of a calculation ledger."
    )
    verify.add_argument("path", help="NDJSON ledger written by 'calculate --ledger'.")
    return parser


def _run_calculate(args: argparse.Namespace) -> int:
    try:
        service = build_service(source=args.source, ledger_path=args.ledger)
        body = _read_input(args.input)
    except CarbonStorageError as exc:
        response = failure_response(exc)
    else:
        response = service.handle_request(body)
    _print_json(response.payload)
    return 0 if response.ok else 1


def _run_area(args: argparse.Namespace) -> int:
    data = json.loads(_read_input(args.input))
    if not isinstance(data, dict):
        raise InvalidInputError("Input JSON must be an object at the top level.")
    geometry = data.get("geometry", data)
    if isinstance(geometry, dict) and geometry.get("type") == "Feature":
        geometry = geometry.get("geometry")
    if not isinstance(geometry, dict):
        raise InvalidInputError("Input must hold a GeoJSON Polygon.")
    ring = ring_from_geojson(geometry)
    _print_json({"area_hectares": round(compute_area_hectares(ring), 4)})
    return 0


def _run_timeseries(args: argparse.Namespace) -> int:
    settings = get_settings()
    if settings.gee_service_account is None:
        raise ConfigurationError("GEE_SERVICE_ACCOUNT is not configured")
    credential = ServiceAccountCredential.from_json(settings.gee_service_account)
    exchanger = TokenExchanger(
        settings.gee_scope, timeout_seconds=settings.http_timeout_seconds
    )
    token = exchanger.get_access_token(credential)
    poller = ComputeJobPoller(
        token,
        base_url=settings.gee_api_base_url,
        project=settings.gee_project,
        poll_interval_seconds=settings.poll_interval_seconds,
        max_attempts=settings.poll_max_attempts,
        timeout_seconds=settings.http_timeout_seconds,
    )
    points = fetch_ndvi_time_series(poller, args.lon, args.lat, args.start, args.end)
    _print_json(
        {
            "longitude": args.lon,
            "latitude": args.lat,
            "count": len(points),
            "points": [point.to_dict() for point in points],
        }
    )
    return 0


def _run_datasets(args: argparse.Namespace) -> int:
    _print_json({"datasets": TileServerClient().list_datasets()})
    return 0


def _run_tile_url(args: argparse.Namespace) -> int:
    template = TileServerClient().tile_url_template(args.dataset, args.year, args.month)
    _print_json({"dataset": args.dataset, "url": template})
    return 0


def _run_verify_ledger(args: argparse.Namespace) -> int:
    path = Path(args.path)
    if not path.exists():
        raise InvalidInputError(f"Ledger {path} does not exist")
    store = NdjsonCalculationStore(path)
    records = sum(1 for _ in store.iter_records())
    valid = store.verify_chain()
    _print_json({"path": str(path), "records": records, "valid": valid})
    return 0 if valid else 1


def main(argv: list[str] | None = None) -> int:
    """Run the ``carbon-storage`` command."""
    parser = _build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:  # pragma: no cover - controlled via tests
        exit_code = int(exc.code) if isinstance(exc.code, int) else 1
        return 0 if exit_code == 0 else 1

    level = logging.DEBUG if args.verbose else logging.WARNING
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    listeners: list[logging.handlers.QueueListener] = []
    if args.log_json:
        listeners.append(configure_structured_logging(package_logger, level=level))
    else:
        logging.basicConfig(level=level, stream=sys.stderr)

    commands = {
        "calculate": _run_calculate,
        "area": _run_area,
        "timeseries": _run_timeseries,
        "datasets": _run_datasets,
        "tile-url": _run_tile_url,
        "verify-ledger": _run_verify_ledger,
    }
    try:
        return commands[args.command](args)
    except CarbonStorageError as exc:
        print(f"{exc.code}: {exc.message}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as exc:
        print(str(exc), file=sys.stderr)
        return 1
    finally:
        shutdown_listeners(listeners)
        for handler in list(package_logger.handlers):
            if isinstance(handler, BoundedQueueHandler):
                package_logger.removeHandler(handler)


if __name__ == "__main__":
    raise SystemExit(main())
