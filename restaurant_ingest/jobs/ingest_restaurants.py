"""CLI job to discover restaurants around a seed point and ingest them end to end."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from restaurant_ingest.core.config import ConfigError, Settings, get_settings, require_credentials
from restaurant_ingest.core.db import apply_schema, close_pool, init_pool
from restaurant_ingest.models import RunSummary, SearchLocation
from restaurant_ingest.pipeline.builder import PipelineComponents, build_pipeline

logger = logging.getLogger(__name__)

DEFAULT_RADIUS = 2000.0
DEFAULT_LOCATION_NAME = "Custom Location"


def load_locations(path: Path) -> List[SearchLocation]:
    """Read a JSON list of ``{name, lat, lng, radius}`` search seeds."""
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Unable to read locations file {path}: {exc}") from exc
    if not isinstance(payload, list) or not payload:
        raise ConfigError(f"Locations file {path} must contain a non-empty JSON list")

    locations: List[SearchLocation] = []
    for index, entry in enumerate(payload):
        try:
            locations.append(
                SearchLocation(
                    name=str(entry["name"]),
                    latitude=float(entry["lat"]),
                    longitude=float(entry["lng"]),
                    radius=float(entry.get("radius", DEFAULT_RADIUS)),
                )
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise ConfigError(f"Invalid location #{index} in {path}: {exc}") from exc
    return locations


def run_ingest_job(
    *,
    locations: Sequence[SearchLocation],
    count: int,
    dry_run: bool = False,
    init_schema: bool = False,
    settings: Optional[Settings] = None,
    components: Optional[PipelineComponents] = None,
) -> RunSummary:
    settings = settings or get_settings()
    require_credentials(settings, classification=not dry_run, database=not dry_run)
    if count <= 0:
        raise ValueError("count must be a positive integer")

    if components is None:
        if not dry_run:
            init_pool()
            if init_schema:
                apply_schema()
        components = build_pipeline(settings)

    logger.info(
        "Starting ingest: target=%d locations=%s dry_run=%s",
        count,
        ", ".join(location.name for location in locations),
        dry_run,
    )
    candidates = components.discovery.discover(locations, count)
    logger.info("Discovered %d unique candidates", len(candidates))

    if dry_run:
        for candidate in candidates:
            print(f"{candidate.external_id}\t{candidate.display_name}")
        return RunSummary(total=len(candidates))

    return components.orchestrator().run(candidates)


def print_summary(summary: RunSummary) -> None:
    print(
        f"total={summary.total} succeeded={summary.succeeded} skipped={summary.skipped} "
        f"failed={summary.failed} elapsed={summary.elapsed_seconds:.1f}s"
    )
    for report in summary.failures():
        print(f"  FAILED {report.candidate.external_id} at {report.failed_stage}: {report.error}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Discover and ingest restaurants from Google Places")
    parser.add_argument("--lat", dest="lat", type=float, help="Seed latitude")
    parser.add_argument("--lng", dest="lng", type=float, help="Seed longitude")
    parser.add_argument(
        "--radius", dest="radius", type=float, default=DEFAULT_RADIUS, help="Search radius in meters"
    )
    parser.add_argument("--count", dest="count", type=int, required=True, help="Target number of unique candidates")
    parser.add_argument(
        "--location-name",
        dest="location_name",
        default=DEFAULT_LOCATION_NAME,
        help="Area name used in the search text",
    )
    parser.add_argument(
        "--locations-file",
        dest="locations_file",
        type=Path,
        help="JSON list of {name, lat, lng, radius} seeds used instead of --lat/--lng",
    )
    parser.add_argument("--dry-run", dest="dry_run", action="store_true", help="Discover only; persist nothing")
    parser.add_argument(
        "--init-schema", dest="init_schema", action="store_true", help="Apply sql/schema.sql before running"
    )
    return parser


def resolve_locations(parser: argparse.ArgumentParser, args: argparse.Namespace) -> List[SearchLocation]:
    if args.locations_file:
        return load_locations(args.locations_file)
    if args.lat is None or args.lng is None:
        parser.error("--lat and --lng are required unless --locations-file is given")
    return [SearchLocation(args.location_name, args.lat, args.lng, args.radius)]


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.count <= 0:
        parser.error("--count must be a positive integer")

    try:
        settings = get_settings()
        logging.getLogger().setLevel(settings.log_level)
        locations = resolve_locations(parser, args)
        summary = run_ingest_job(
            locations=locations,
            count=args.count,
            dry_run=args.dry_run,
            init_schema=args.init_schema,
            settings=settings,
        )
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return 2
    except Exception:  # noqa: BLE001
        logger.exception("Ingest run aborted")
        return 1
    finally:
        close_pool()

    print_summary(summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
