"""Candidate discovery and detail resolution against the place-search service."""

import logging
import time
from typing import Dict, Iterable, List, Optional

from restaurant_ingest.core.throttle import RetryExecutor, RetryExhaustedError
from restaurant_ingest.etl.transform import parse_place_details
from restaurant_ingest.models import CandidatePlace, PlaceDetailRecord, SearchLocation
from restaurant_ingest.vendors.google_places import MAX_RESULTS_PER_SEARCH, GooglePlacesClient

logger = logging.getLogger(__name__)

DEFAULT_PAGE_DELAY = 2.0


def build_query(location: SearchLocation) -> str:
    return f"restaurants in {location.name}"


def _display_name(place: Dict) -> str:
    name = place.get("displayName")
    if isinstance(name, dict):
        return (name.get("text") or "").strip() or "Unknown"
    return str(name or "Unknown").strip()


class PlaceDiscovery:
    """Sweep search locations page by page until enough unique candidates exist.

    Results are keyed by external id so overlapping search circles never yield
    the same place twice. Pages of one query are separated by ``page_delay``
    on top of the client's own request spacing.
    """

    def __init__(
        self,
        places: GooglePlacesClient,
        retry: RetryExecutor,
        *,
        page_delay: float = DEFAULT_PAGE_DELAY,
        max_results_per_page: int = MAX_RESULTS_PER_SEARCH,
    ) -> None:
        self.places = places
        self.retry = retry
        self.page_delay = page_delay
        self.max_results_per_page = max_results_per_page

    def discover(self, locations: Iterable[SearchLocation], target: int) -> List[CandidatePlace]:
        if target <= 0:
            return []

        found: Dict[str, CandidatePlace] = {}
        for location in locations:
            if len(found) >= target:
                break
            self._sweep_location(location, target, found)
            logger.info("Location %s done; total unique candidates=%d", location.name, len(found))

        if len(found) >= target:
            logger.info("Reached target of %d unique candidates", target)
        return list(found.values())[:target]

    def _sweep_location(self, location: SearchLocation, target: int, found: Dict[str, CandidatePlace]) -> None:
        query = build_query(location)
        page_token: Optional[str] = None
        page = 1

        while True:
            token = page_token
            try:
                response = self.retry.execute(
                    lambda: self.places.search_text(query, location, token, self.max_results_per_page),
                    f"search {location.name!r} page {page}",
                )
            except RetryExhaustedError as exc:
                logger.error("Discovery failed for %s: %s", location.name, exc)
                return

            places = response.get("places") or []
            if not places:
                logger.info("No more results for %s after page %d", location.name, page - 1)
                return

            added = 0
            for place in places:
                external_id = place.get("id")
                if not external_id:
                    logger.debug("Skipping result without id: %s", place)
                    continue
                if external_id not in found:
                    found[external_id] = CandidatePlace(external_id=external_id, display_name=_display_name(place))
                    added += 1
                if len(found) >= target:
                    break

            logger.info(
                "Fetched %d results on page %d for %s (%d new, total=%d)",
                len(places),
                page,
                location.name,
                added,
                len(found),
            )

            page_token = response.get("nextPageToken")
            if len(found) >= target or not page_token:
                return

            time.sleep(self.page_delay)
            page += 1


class PlaceDetailFetcher:
    def __init__(self, places: GooglePlacesClient, retry: RetryExecutor) -> None:
        self.places = places
        self.retry = retry

    def fetch(self, external_id: str) -> PlaceDetailRecord:
        payload = self.retry.execute(lambda: self.places.place_details(external_id), f"details {external_id}")
        return parse_place_details(payload)
