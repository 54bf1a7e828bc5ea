"""Composite ambiance and food-quality scores from aggregated tags."""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple, Type

from pydantic import BaseModel

from restaurant_ingest.core.throttle import RetryExecutor
from restaurant_ingest.etl.responses import AmbianceScores, FoodQualityScores, ResponseDecodeError, decode_response
from restaurant_ingest.models import RestaurantEntity, ScoreReport, TagSummary
from restaurant_ingest.vendors.openai_client import ClassificationClient

logger = logging.getLogger(__name__)

MIN_SCORE = 0.0
MAX_SCORE = 10.0


@dataclass(frozen=True)
class Rubric:
    key: str
    subject: str
    preamble: str
    dimensions: Tuple[Tuple[str, str], ...]
    bands: Tuple[str, ...]
    response_model: Type[BaseModel]


AMBIANCE_RUBRIC = Rubric(
    key="ambiance",
    subject="ambiance",
    preamble=(
        'IMPORTANT: "Good ambiance" is context-dependent and should match the restaurant\'s style. '
        'However, EXCEPTIONAL ambiance goes beyond just being "appropriate" - it means the atmosphere '
        "is notably memorable, immersive, well-designed, and creates a distinct experience."
    ),
    dimensions=(
        ("vibrant", "energetic, colorful, lively atmosphere with strong visual appeal"),
        ("romantic", "suitable for dates, intimate atmosphere, mood-setting lighting/decor"),
        ("trendy", "modern, stylish, instagram-worthy, contemporary design"),
        ("stylish", "well-designed, aesthetically pleasing, cohesive visual identity"),
        ("immersive", "transportive theming, creates a distinct world or experience"),
        ("inviting", "warm, welcoming, makes guests want to stay and return"),
    ),
    bands=(
        "9-10: Exceptional, memorable, immersive experience",
        "7-8: Very good, well-designed, notable atmosphere",
        "5-6: Good, pleasant, appropriate but not particularly distinctive",
        "3-4: Average, functional but forgettable",
        "0-2: Poor, lacking, or uncomfortable",
    ),
    response_model=AmbianceScores,
)

FOOD_QUALITY_RUBRIC = Rubric(
    key="food_quality",
    subject="food quality",
    preamble=(
        'IMPORTANT: "Good food" is context-dependent and should match the restaurant\'s concept. '
        'However, EXCEPTIONAL food goes beyond just being "appropriate" - it means the cuisine is notably '
        "memorable, skillfully executed, uses quality ingredients, and delivers a distinct culinary experience."
    ),
    dimensions=(
        ("flavorful", "bold, well-balanced, complex flavors that create memorable taste experiences"),
        ("authentic", "true to culinary tradition, respects cultural roots, genuine execution (when applicable)"),
        ("satisfying", "portion sizes appropriate, leaves diners content, well-composed and fulfilling dishes"),
        ("comforting", "soul-satisfying, evokes warmth and nostalgia, creates emotional connection through food"),
        ("aromatic", "enticing smells, fragrant spices/herbs, dishes that engage the senses before first bite"),
        ("appetizing", "visually appealing presentation, dishes that look as good as they taste, inviting plating"),
    ),
    bands=(
        "9-10: Exceptional, memorable, masterfully executed cuisine",
        "7-8: Very good, skillfully prepared, notable quality and technique",
        "5-6: Good, tasty, well-prepared but not particularly distinctive",
        "3-4: Average, acceptable but forgettable, lacks refinement",
        "0-2: Poor, low-quality ingredients or execution",
    ),
    response_model=FoodQualityScores,
)


def clamp_score(value: float) -> float:
    if value is None or not math.isfinite(value):
        raise ResponseDecodeError(f"overall score is not a finite number: {value!r}")
    return min(MAX_SCORE, max(MIN_SCORE, float(value)))


def build_prompt(rubric: Rubric, restaurant: RestaurantEntity, tags: TagSummary) -> str:
    dimension_lines = "\n".join(f"- {name}: {description}" for name, description in rubric.dimensions)
    band_lines = "\n".join(f"- {band}" for band in rubric.bands)
    json_shape = ", ".join(f"{name}: n" for name, _ in rubric.dimensions)
    return (
        f"Analyze this restaurant's {rubric.subject} based on the following data.\n\n"
        f"Restaurant: {restaurant.name}\n"
        f"Price Range: {restaurant.price or 'Unknown'}\n"
        f"Image tags: {', '.join(tags.image_tags)}\n"
        f"Review tags: {', '.join(tags.review_tags)}\n\n"
        f"{rubric.preamble}\n\n"
        f"Rate the following {rubric.subject} qualities from 0-10:\n\n"
        f"{dimension_lines}\n\n"
        f'Provide an overall "{rubric.subject}" score from 0-10:\n'
        f"{band_lines}\n\n"
        f"Return as JSON: {{ {json_shape}, overall: n }}"
    )


class ScoreAnalyzer:
    """Run the two rubric passes independently and persist each overall score."""

    def __init__(self, store, classifier: ClassificationClient, retry: RetryExecutor) -> None:
        self.store = store
        self.classifier = classifier
        self.retry = retry

    def run_pass(self, rubric: Rubric, restaurant: RestaurantEntity, tags: TagSummary) -> float:
        prompt = build_prompt(rubric, restaurant, tags)
        scores = self.retry.execute(
            lambda: decode_response(self.classifier.score(prompt), rubric.response_model),
            f"{rubric.key} score for restaurant {restaurant.id}",
        )
        return clamp_score(scores.overall)

    def analyze(self, restaurant: RestaurantEntity, tags: Optional[TagSummary] = None) -> ScoreReport:
        if tags is None:
            tags = self.store.tag_summary(restaurant.id)
        report = ScoreReport()

        for rubric in (AMBIANCE_RUBRIC, FOOD_QUALITY_RUBRIC):
            try:
                overall = self.run_pass(rubric, restaurant, tags)
                if rubric is AMBIANCE_RUBRIC:
                    self.store.update_scores(restaurant.id, ambiance=overall)
                    report.ambiance = overall
                else:
                    self.store.update_scores(restaurant.id, food_quality=overall)
                    report.food_quality = overall
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed %s pass for restaurant %s: %s", rubric.key, restaurant.id, exc)
                report.errors[rubric.key] = str(exc)
                continue
            logger.info("%s score for %s: %.1f/10", rubric.subject.capitalize(), restaurant.name, overall)

        return report
