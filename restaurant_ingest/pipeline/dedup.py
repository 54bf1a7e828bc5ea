"""Duplicate detection against restaurants already in the store."""

import logging
from typing import Optional

from restaurant_ingest.models import SOURCE_GOOGLE, RestaurantEntity

logger = logging.getLogger(__name__)

# Roughly 50 metres in either axis.
COORDINATE_TOLERANCE = 0.0005


class DuplicateChecker:
    def __init__(self, store, *, source: str = SOURCE_GOOGLE, tolerance: float = COORDINATE_TOLERANCE) -> None:
        self.store = store
        self.source = source
        self.tolerance = tolerance

    def find_duplicate(
        self, external_id: str, name: str, latitude: float, longitude: float
    ) -> Optional[RestaurantEntity]:
        """Return the existing restaurant this place duplicates, if any.

        An exact (source, external id) match wins; otherwise a restaurant with the
        same name whose coordinates differ by less than the tolerance on both
        axes counts as the same venue.
        """
        existing = self.store.find_restaurant_by_source(self.source, external_id)
        if existing:
            logger.debug("Duplicate by source id %s -> restaurant %s", external_id, existing.id)
            return existing

        for candidate in self.store.find_restaurants_by_name(name):
            if (
                abs(candidate.latitude - latitude) < self.tolerance
                and abs(candidate.longitude - longitude) < self.tolerance
            ):
                logger.debug("Duplicate by name/location %r -> restaurant %s", name, candidate.id)
                return candidate
        return None

    def is_duplicate(self, external_id: str, name: str, latitude: float, longitude: float) -> bool:
        return self.find_duplicate(external_id, name, latitude, longitude) is not None
