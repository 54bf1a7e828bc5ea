"""Writes canonical restaurants with their images, reviews and cuisine tags."""

import logging
from typing import Any, Dict, List

from restaurant_ingest.etl.transform import extract_cuisines, review_source_id, to_restaurant_row
from restaurant_ingest.models import SOURCE_GOOGLE, PlaceDetailRecord, RestaurantEntity
from restaurant_ingest.vendors.google_places import photo_media_url

logger = logging.getLogger(__name__)

MAX_IMAGES = 8
MAX_REVIEWS = 5
CUISINE_TAG_TYPE = "cuisine"
AMBIANCE_TAG_TYPE = "ambiance"


def build_image_rows(record: PlaceDetailRecord, source: str = SOURCE_GOOGLE) -> List[Dict[str, Any]]:
    return [
        {"source": source, "source_id": photo.name, "url": photo_media_url(photo.name)}
        for photo in record.photos[:MAX_IMAGES]
    ]


def build_review_rows(record: PlaceDetailRecord, source: str = SOURCE_GOOGLE) -> List[Dict[str, Any]]:
    return [
        {
            "source": source,
            "source_id": review_source_id(record.external_id, review),
            "review": review.text,
            "rating": review.rating,
            "posted_by": review.author,
        }
        for review in record.reviews[:MAX_REVIEWS]
    ]


class RestaurantPersister:
    def __init__(self, store, *, source: str = SOURCE_GOOGLE) -> None:
        self.store = store
        self.source = source

    def persist(self, record: PlaceDetailRecord) -> RestaurantEntity:
        """Insert the restaurant with its assets and cuisine tags in one transaction.

        Assets use insert-or-skip on their own external ids, so replaying the
        same source data never duplicates images or reviews. A failure part way
        through leaves nothing behind, so a rerun can ingest the place again.
        """
        cuisines = extract_cuisines(record.types)
        restaurant, images, reviews = self.store.persist_restaurant(
            to_restaurant_row(record, self.source),
            build_image_rows(record, self.source),
            build_review_rows(record, self.source),
            cuisines,
            tag_type=CUISINE_TAG_TYPE,
            tag_source=self.source,
        )

        logger.info(
            "Persisted %s (id=%s) with %d images, %d reviews, cuisines=%s",
            restaurant.name,
            restaurant.id,
            images,
            reviews,
            ", ".join(cuisines),
        )
        return restaurant
