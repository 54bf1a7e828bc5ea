"""Image classification and review tagging through the classification service."""

import base64
import logging
import time
from typing import Callable, Dict, Iterable, List, Tuple

from restaurant_ingest.core.throttle import RetryExecutor
from restaurant_ingest.etl.responses import ImageClassification, ReviewTagging, decode_response
from restaurant_ingest.models import ImageAsset, ReviewRecord, TaggingTally
from restaurant_ingest.pipeline.persist import AMBIANCE_TAG_TYPE, CUISINE_TAG_TYPE
from restaurant_ingest.vendors.openai_client import ClassificationClient

logger = logging.getLogger(__name__)

IMAGE_TAG_SOURCE = "openai-vision"
REVIEW_TAG_SOURCE = "openai-text"
DEFAULT_ASSET_DELAY = 0.5

MediaFetcher = Callable[[str], Tuple[bytes, str]]


def to_data_uri(content: bytes, content_type: str = "image/jpeg") -> str:
    if not content:
        raise ValueError("image payload is empty")
    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{content_type or 'image/jpeg'};base64,{encoded}"


def tag_type_for_category(category: str) -> str:
    return CUISINE_TAG_TYPE if category == "food" else AMBIANCE_TAG_TYPE


def _unique(values: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(values))


class ImageClassifier:
    """Classify each image and attach five descriptive tags to it.

    One image failing (after retries) is logged and never stops the rest.
    """

    def __init__(
        self,
        store,
        classifier: ClassificationClient,
        fetch_media: MediaFetcher,
        retry: RetryExecutor,
        *,
        delay: float = DEFAULT_ASSET_DELAY,
    ) -> None:
        self.store = store
        self.classifier = classifier
        self.fetch_media = fetch_media
        self.retry = retry
        self.delay = delay

    def classify(self, image: ImageAsset) -> ImageClassification:
        def _attempt() -> ImageClassification:
            content, content_type = self.fetch_media(image.url)
            reply = self.classifier.classify_image(to_data_uri(content, content_type))
            return decode_response(reply, ImageClassification)

        return self.retry.execute(_attempt, f"image {image.id}")

    def tag_image(self, image: ImageAsset) -> bool:
        logger.info("Tagging image %s", image.id)
        try:
            result = self.classify(image)
            tag_type_id = self.store.get_or_create_tag_type(tag_type_for_category(result.category))
            tag_ids = [
                self.store.get_or_create_tag(tag, tag_type_id, IMAGE_TAG_SOURCE) for tag in _unique(result.tags)
            ]
            self.store.tag_image(image.id, result.category, tag_ids)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to tag image %s: %s", image.id, exc)
            return False
        logger.info("Image %s tagged: %s", image.id, result.category)
        return True

    def tag_images(self, images: Iterable[ImageAsset]) -> TaggingTally:
        tally = TaggingTally()
        for index, image in enumerate(images):
            if index and self.delay > 0:
                time.sleep(self.delay)
            if self.tag_image(image):
                tally.succeeded += 1
            else:
                tally.failed += 1
        return tally


class ReviewTagger:
    """Extract five labelled phrases per review and attach them as tags."""

    def __init__(
        self,
        store,
        classifier: ClassificationClient,
        retry: RetryExecutor,
        *,
        delay: float = DEFAULT_ASSET_DELAY,
    ) -> None:
        self.store = store
        self.classifier = classifier
        self.retry = retry
        self.delay = delay

    def extract(self, review: ReviewRecord) -> ReviewTagging:
        return self.retry.execute(
            lambda: decode_response(self.classifier.extract_review_tags(review.text), ReviewTagging),
            f"review {review.id}",
        )

    def tag_review(self, review: ReviewRecord) -> bool:
        logger.info("Tagging review %s", review.id)
        try:
            result = self.extract(review)
            tag_types: Dict[str, int] = {}
            for tag in result.tags:
                if tag.category not in tag_types:
                    tag_types[tag.category] = self.store.get_or_create_tag_type(tag.category)
            tag_ids = _unique(
                self.store.get_or_create_tag(tag.phrase, tag_types[tag.category], REVIEW_TAG_SOURCE)
                for tag in result.tags
            )
            self.store.tag_review(review.id, tag_ids)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to tag review %s: %s", review.id, exc)
            return False
        logger.info("Review %s tagged with %d tags", review.id, len(tag_ids))
        return True

    def tag_reviews(self, reviews: Iterable[ReviewRecord]) -> TaggingTally:
        tally = TaggingTally()
        submitted = 0
        for review in reviews:
            if not review.text or not review.text.strip():
                tally.skipped += 1
                continue
            if submitted and self.delay > 0:
                time.sleep(self.delay)
            submitted += 1
            if self.tag_review(review):
                tally.succeeded += 1
            else:
                tally.failed += 1
        return tally
