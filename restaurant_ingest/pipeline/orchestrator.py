"""Per-candidate state machine and run-level bookkeeping.

Each stage is a plain function of a :class:`CandidateContext` that returns a
:class:`StageOutcome`. The orchestrator walks the stage table in order:

    discovered -> details_fetched -> (skipped | persisted) -> images_tagged
    -> reviews_tagged -> scored -> complete

Any stage may end the candidate as ``failed``; nothing a candidate does stops
the next one from being processed.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from restaurant_ingest.core.db import DuplicateRestaurantError
from restaurant_ingest.models import (
    CandidatePlace,
    CandidateReport,
    CandidateState,
    PlaceDetailRecord,
    RestaurantEntity,
    RunSummary,
)
from restaurant_ingest.pipeline.dedup import DuplicateChecker
from restaurant_ingest.pipeline.discovery import PlaceDetailFetcher
from restaurant_ingest.pipeline.enrich import ImageClassifier, ReviewTagger
from restaurant_ingest.pipeline.persist import RestaurantPersister
from restaurant_ingest.pipeline.scoring import ScoreAnalyzer

logger = logging.getLogger(__name__)

OK = "ok"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass(frozen=True)
class StageOutcome:
    status: str
    message: Optional[str] = None

    @classmethod
    def ok(cls) -> "StageOutcome":
        return cls(OK)

    @classmethod
    def skip(cls, reason: str) -> "StageOutcome":
        return cls(SKIPPED, reason)

    @classmethod
    def fail(cls, message: str) -> "StageOutcome":
        return cls(FAILED, message)


@dataclass
class CandidateContext:
    candidate: CandidatePlace
    report: CandidateReport
    details: Optional[PlaceDetailRecord] = None
    restaurant: Optional[RestaurantEntity] = None


Stage = Callable[[CandidateContext], StageOutcome]
StageTable = Sequence[Tuple[str, CandidateState, Stage]]


def run_stages(context: CandidateContext, stages: StageTable) -> CandidateReport:
    """Advance one candidate through ``stages`` and return its final report."""
    report = context.report
    for name, reached, stage in stages:
        try:
            outcome = stage(context)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Stage %s raised for %s", name, context.candidate.external_id)
            outcome = StageOutcome.fail(str(exc))

        if outcome.status == FAILED:
            report.state = CandidateState.FAILED
            report.failed_stage = name
            report.error = outcome.message
            return report
        if outcome.status == SKIPPED:
            report.state = CandidateState.SKIPPED
            report.skip_reason = outcome.message
            return report
        report.state = reached

    report.state = CandidateState.COMPLETE
    return report


class IngestOrchestrator:
    def __init__(
        self,
        *,
        fetcher: PlaceDetailFetcher,
        checker: DuplicateChecker,
        persister: RestaurantPersister,
        image_classifier: ImageClassifier,
        review_tagger: ReviewTagger,
        scorer: ScoreAnalyzer,
        store,
        progress_every: int = 10,
    ) -> None:
        self.fetcher = fetcher
        self.checker = checker
        self.persister = persister
        self.image_classifier = image_classifier
        self.review_tagger = review_tagger
        self.scorer = scorer
        self.store = store
        self.progress_every = max(1, progress_every)

    # ---------- Stages ----------

    def fetch_details(self, context: CandidateContext) -> StageOutcome:
        try:
            context.details = self.fetcher.fetch(context.candidate.external_id)
        except Exception as exc:  # noqa: BLE001
            return StageOutcome.fail(str(exc))
        return StageOutcome.ok()

    def check_duplicate(self, context: CandidateContext) -> StageOutcome:
        details = context.details
        existing = self.checker.find_duplicate(details.external_id, details.name, details.latitude, details.longitude)
        if existing:
            context.report.restaurant_id = existing.id
            return StageOutcome.skip(f"already exists as restaurant {existing.id}")
        return StageOutcome.ok()

    def persist(self, context: CandidateContext) -> StageOutcome:
        try:
            context.restaurant = self.persister.persist(context.details)
        except DuplicateRestaurantError as exc:
            return StageOutcome.skip(str(exc))
        context.report.restaurant_id = context.restaurant.id
        return StageOutcome.ok()

    def tag_images(self, context: CandidateContext) -> StageOutcome:
        images = self.store.list_images(context.restaurant.id)
        context.report.images = self.image_classifier.tag_images(images)
        return StageOutcome.ok()

    def tag_reviews(self, context: CandidateContext) -> StageOutcome:
        reviews = self.store.list_reviews(context.restaurant.id)
        context.report.reviews = self.review_tagger.tag_reviews(reviews)
        return StageOutcome.ok()

    def score(self, context: CandidateContext) -> StageOutcome:
        context.report.scores = self.scorer.analyze(context.restaurant)
        return StageOutcome.ok()

    def stages(self) -> List[Tuple[str, CandidateState, Stage]]:
        return [
            ("fetch_details", CandidateState.DETAILS_FETCHED, self.fetch_details),
            ("check_duplicate", CandidateState.DETAILS_FETCHED, self.check_duplicate),
            ("persist", CandidateState.PERSISTED, self.persist),
            ("tag_images", CandidateState.IMAGES_TAGGED, self.tag_images),
            ("tag_reviews", CandidateState.REVIEWS_TAGGED, self.tag_reviews),
            ("score", CandidateState.SCORED, self.score),
        ]

    # ---------- Run ----------

    def process(self, candidate: CandidatePlace) -> CandidateReport:
        context = CandidateContext(candidate=candidate, report=CandidateReport(candidate=candidate))
        return run_stages(context, self.stages())

    def run(self, candidates: Iterable[CandidatePlace]) -> RunSummary:
        candidates = list(candidates)
        summary = RunSummary()
        started = time.monotonic()
        total = len(candidates)

        for index, candidate in enumerate(candidates, start=1):
            logger.info("[%d/%d] Processing %s (%s)", index, total, candidate.display_name, candidate.external_id)
            report = self.process(candidate)
            summary.record(report)

            if report.state == CandidateState.SKIPPED:
                logger.info("Skipped %s: %s", candidate.external_id, report.skip_reason)
            elif report.state == CandidateState.FAILED:
                logger.error("Failed %s at %s: %s", candidate.external_id, report.failed_stage, report.error)
            else:
                logger.info("Completed %s as restaurant %s", candidate.external_id, report.restaurant_id)

            if index % self.progress_every == 0:
                logger.info(
                    "Progress %d/%d: succeeded=%d skipped=%d failed=%d",
                    index,
                    total,
                    summary.succeeded,
                    summary.skipped,
                    summary.failed,
                )

        summary.elapsed_seconds = time.monotonic() - started
        logger.info(
            "Run finished: total=%d succeeded=%d skipped=%d failed=%d elapsed=%.1fs",
            summary.total,
            summary.succeeded,
            summary.skipped,
            summary.failed,
            summary.elapsed_seconds,
        )
        return summary
