"""Batch jobs that (re)enrich restaurants already in the database."""

import argparse
import logging
import sys
import time
from typing import Callable, List, Optional, Sequence

from restaurant_ingest.core.config import ConfigError, get_settings, require_credentials
from restaurant_ingest.core.db import close_pool, init_pool
from restaurant_ingest.models import TaggingTally
from restaurant_ingest.pipeline.builder import PipelineComponents, build_pipeline

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10


def _merge(total: TaggingTally, part: TaggingTally) -> None:
    total.succeeded += part.succeeded
    total.failed += part.failed
    total.skipped += part.skipped


def _run_batches(
    fetch_batch: Callable[[int, int], List],
    tag_batch: Callable[[List], TaggingTally],
    *,
    label: str,
    batch_size: int,
    limit: Optional[int],
) -> TaggingTally:
    """Page through pending rows by id so rows that keep failing are not refetched."""
    tally = TaggingTally()
    after_id = 0
    processed = 0
    while True:
        size = batch_size if limit is None else min(batch_size, limit - processed)
        if size <= 0:
            break
        batch = fetch_batch(after_id, size)
        if not batch:
            break
        _merge(tally, tag_batch(batch))
        processed += len(batch)
        after_id = batch[-1].id
        logger.info(
            "Processed %d %s (succeeded=%d skipped=%d failed=%d)",
            processed,
            label,
            tally.succeeded,
            tally.skipped,
            tally.failed,
        )
    return tally


def enrich_images(
    components: PipelineComponents, *, batch_size: int = DEFAULT_BATCH_SIZE, limit: Optional[int] = None
) -> TaggingTally:
    store = components.store
    return _run_batches(
        lambda after_id, size: store.list_unclassified_images(after_id=after_id, limit=size),
        components.image_classifier.tag_images,
        label="images",
        batch_size=batch_size,
        limit=limit,
    )


def enrich_reviews(
    components: PipelineComponents, *, batch_size: int = DEFAULT_BATCH_SIZE, limit: Optional[int] = None
) -> TaggingTally:
    store = components.store
    return _run_batches(
        lambda after_id, size: store.list_untagged_reviews(after_id=after_id, limit=size),
        components.review_tagger.tag_reviews,
        label="reviews",
        batch_size=batch_size,
        limit=limit,
    )


def rescore_restaurants(
    components: PipelineComponents,
    *,
    skip_existing: bool = False,
    limit: Optional[int] = None,
    start_from: int = 0,
    delay: float = 0.0,
) -> TaggingTally:
    """Rerun both rubric passes; restaurants without any tags are skipped."""
    store = components.store
    restaurants = store.list_restaurants(skip_scored=skip_existing, limit=limit, offset=start_from)
    logger.info("Scoring %d restaurants", len(restaurants))

    tally = TaggingTally()
    for index, restaurant in enumerate(restaurants, start=1):
        tags = store.tag_summary(restaurant.id)
        if not tags.aggregated():
            logger.warning("Skipping %s (id=%s): no tags", restaurant.name, restaurant.id)
            tally.skipped += 1
            continue

        if index > 1 and delay > 0:
            time.sleep(delay)
        report = components.scorer.analyze(restaurant, tags)
        if report.errors:
            tally.failed += 1
        else:
            tally.succeeded += 1

        if index % components.progress_every == 0:
            logger.info(
                "Progress %d/%d: succeeded=%d skipped=%d failed=%d",
                index,
                len(restaurants),
                tally.succeeded,
                tally.skipped,
                tally.failed,
            )
    return tally


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Enrich restaurants already stored in the database")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("images", "Classify images that have no category yet"),
        ("reviews", "Tag reviews that have no tags yet"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--batch-size", dest="batch_size", type=int, default=DEFAULT_BATCH_SIZE)
        sub.add_argument("--limit", dest="limit", type=int, help="Maximum rows to process")

    scores = subparsers.add_parser("scores", help="Recompute ambiance and food-quality scores")
    scores.add_argument(
        "--skip-existing", dest="skip_existing", action="store_true", help="Skip restaurants that already have scores"
    )
    scores.add_argument("--limit", dest="limit", type=int, help="Maximum restaurants to process")
    scores.add_argument("--start-from", dest="start_from", type=int, default=0, help="Offset into the restaurant list")
    return parser


def run_command(args: argparse.Namespace, components: PipelineComponents, *, delay: float = 0.0) -> TaggingTally:
    if args.command == "images":
        return enrich_images(components, batch_size=args.batch_size, limit=args.limit)
    if args.command == "reviews":
        return enrich_reviews(components, batch_size=args.batch_size, limit=args.limit)
    return rescore_restaurants(
        components,
        skip_existing=args.skip_existing,
        limit=args.limit,
        start_from=args.start_from,
        delay=delay,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)
    if getattr(args, "batch_size", 1) <= 0:
        parser.error("--batch-size must be a positive integer")

    try:
        settings = get_settings()
        logging.getLogger().setLevel(settings.log_level)
        require_credentials(settings, places=args.command == "images")
        init_pool()
        tally = run_command(args, build_pipeline(settings), delay=settings.asset_delay)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return 2
    except Exception:  # noqa: BLE001
        logger.exception("%s job aborted", args.command)
        return 1
    finally:
        close_pool()

    print(f"{args.command}: succeeded={tally.succeeded} skipped={tally.skipped} failed={tally.failed}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
