"""Wires clients, limiters and stages together from :class:`Settings`."""

import logging
from dataclasses import dataclass
from typing import Any, NoReturn, Optional

import requests

from restaurant_ingest.core.config import ConfigError, Settings
from restaurant_ingest.core.db import PostgresStore
from restaurant_ingest.core.throttle import RateLimiter, RetryExecutor
from restaurant_ingest.pipeline.dedup import DuplicateChecker
from restaurant_ingest.pipeline.discovery import PlaceDetailFetcher, PlaceDiscovery
from restaurant_ingest.pipeline.enrich import ImageClassifier, ReviewTagger
from restaurant_ingest.pipeline.orchestrator import IngestOrchestrator
from restaurant_ingest.pipeline.persist import RestaurantPersister
from restaurant_ingest.pipeline.scoring import ScoreAnalyzer
from restaurant_ingest.vendors.google_places import GooglePlacesClient
from restaurant_ingest.vendors.openai_client import ClassificationClient

logger = logging.getLogger(__name__)


def _media_unavailable(url: str) -> NoReturn:
    raise ConfigError("GOOGLE_PLACES_API_KEY is required to download images")


@dataclass
class PipelineComponents:
    store: Any
    retry: RetryExecutor
    discovery: Optional[PlaceDiscovery]
    fetcher: Optional[PlaceDetailFetcher]
    checker: DuplicateChecker
    persister: RestaurantPersister
    image_classifier: Optional[ImageClassifier]
    review_tagger: Optional[ReviewTagger]
    scorer: Optional[ScoreAnalyzer]
    progress_every: int = 10

    def orchestrator(self) -> IngestOrchestrator:
        return IngestOrchestrator(
            fetcher=self.fetcher,
            checker=self.checker,
            persister=self.persister,
            image_classifier=self.image_classifier,
            review_tagger=self.review_tagger,
            scorer=self.scorer,
            store=self.store,
            progress_every=self.progress_every,
        )


def build_pipeline(
    settings: Settings,
    *,
    store: Any = None,
    session: Optional[requests.Session] = None,
    openai_client: Any = None,
) -> PipelineComponents:
    """Build every stage component.

    Each external dependency gets its own :class:`RateLimiter`: place search,
    place details, media downloads and the classification service. Clients
    whose credential is absent are left out; callers check credentials first.
    """
    store = store if store is not None else PostgresStore()
    session = session or requests.Session()
    retry = RetryExecutor(settings.max_retries, settings.retry_delay, fatal_errors=(ConfigError,))

    discovery = fetcher = None
    fetch_media = _media_unavailable
    if settings.google_places_api_key:
        key = settings.google_places_api_key
        search = GooglePlacesClient(
            key, session=session, limiter=RateLimiter(settings.request_interval, name="places-search")
        )
        details = GooglePlacesClient(
            key, session=session, limiter=RateLimiter(settings.request_interval, name="places-details")
        )
        media = GooglePlacesClient(
            key, session=session, limiter=RateLimiter(settings.request_interval, name="places-media")
        )
        discovery = PlaceDiscovery(search, retry, page_delay=settings.page_delay)
        fetcher = PlaceDetailFetcher(details, retry)
        fetch_media = media.fetch_media

    image_classifier = review_tagger = scorer = None
    if settings.openai_api_key or openai_client is not None:
        classifier = ClassificationClient(
            settings.openai_api_key,
            model=settings.openai_model,
            limiter=RateLimiter(settings.request_interval, name="classification"),
            client=openai_client,
        )
        image_classifier = ImageClassifier(store, classifier, fetch_media, retry, delay=settings.asset_delay)
        review_tagger = ReviewTagger(store, classifier, retry, delay=settings.asset_delay)
        scorer = ScoreAnalyzer(store, classifier, retry)

    logger.debug(
        "Pipeline built: places=%s classification=%s", discovery is not None, image_classifier is not None
    )
    return PipelineComponents(
        store=store,
        retry=retry,
        discovery=discovery,
        fetcher=fetcher,
        checker=DuplicateChecker(store),
        persister=RestaurantPersister(store),
        image_classifier=image_classifier,
        review_tagger=review_tagger,
        scorer=scorer,
        progress_every=settings.progress_every,
    )
