"""Utilities for transforming Google Places responses into restaurant rows."""

import hashlib
import logging
from typing import Any, Dict, Iterable, List, Optional

from restaurant_ingest.models import (
    SOURCE_GOOGLE,
    PhotoReference,
    PlaceDetailRecord,
    ReviewSnippet,
)

logger = logging.getLogger(__name__)

DEFAULT_PRICE_TIER = "$$"
DEFAULT_CUISINE = "American"
UNKNOWN_NAME = "Unknown Restaurant"
ANONYMOUS_AUTHOR = "Anonymous"

PRICE_TIERS = {
    "PRICE_LEVEL_FREE": "$",
    "PRICE_LEVEL_INEXPENSIVE": "$",
    "PRICE_LEVEL_MODERATE": "$$",
    "PRICE_LEVEL_EXPENSIVE": "$$$",
    "PRICE_LEVEL_VERY_EXPENSIVE": "$$$$",
}

CUISINES = {
    "american_restaurant": "American",
    "italian_restaurant": "Italian",
    "chinese_restaurant": "Chinese",
    "japanese_restaurant": "Japanese",
    "mexican_restaurant": "Mexican",
    "thai_restaurant": "Thai",
    "indian_restaurant": "Indian",
    "french_restaurant": "French",
    "mediterranean_restaurant": "Mediterranean",
    "greek_restaurant": "Greek",
    "spanish_restaurant": "Spanish",
    "vietnamese_restaurant": "Vietnamese",
    "korean_restaurant": "Korean",
    "seafood_restaurant": "Seafood",
    "steak_house": "Steakhouse",
    "sushi_restaurant": "Sushi",
    "pizza_restaurant": "Pizza",
    "sandwich_shop": "Sandwiches",
    "bar": "Bar & Grill",
    "barbecue_restaurant": "BBQ",
    "cafe": "Cafe",
    "bakery": "Bakery",
    "fast_food_restaurant": "Fast Food",
    "hamburger_restaurant": "Burgers",
    "breakfast_restaurant": "Breakfast",
    "brunch_restaurant": "Brunch",
}


def map_price_level(price_level: Optional[str]) -> str:
    return PRICE_TIERS.get(price_level or "", DEFAULT_PRICE_TIER)


def extract_cuisines(types: Iterable[str]) -> List[str]:
    """Map category codes to cuisines, keeping first-seen order."""
    cuisines: List[str] = []
    for type_name in types or []:
        cuisine = CUISINES.get(type_name)
        if cuisine and cuisine not in cuisines:
            cuisines.append(cuisine)
    return cuisines or [DEFAULT_CUISINE]


def _safe_float(value: Any, default: float = 0.0) -> float:
    try:
        if value is None:
            return default
        return float(value)
    except (TypeError, ValueError):
        return default


def _strip_or_empty(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _localized_text(value: Any) -> str:
    # v1 wraps display strings as {"text": ..., "languageCode": ...}
    if isinstance(value, dict):
        return _strip_or_empty(value.get("text"))
    return _strip_or_empty(value)


def _parse_photos(raw_photos: Any) -> List[PhotoReference]:
    photos: List[PhotoReference] = []
    for raw in raw_photos or []:
        if not isinstance(raw, dict) or not raw.get("name"):
            continue
        photos.append(PhotoReference(name=raw["name"], width=raw.get("widthPx"), height=raw.get("heightPx")))
    return photos


def _parse_reviews(raw_reviews: Any) -> List[ReviewSnippet]:
    reviews: List[ReviewSnippet] = []
    for raw in raw_reviews or []:
        if not isinstance(raw, dict):
            continue
        author = raw.get("authorAttribution") or {}
        reviews.append(
            ReviewSnippet(
                external_id=raw.get("name") or None,
                text=_localized_text(raw.get("text")),
                rating=_safe_float(raw.get("rating")),
                author=_strip_or_empty(author.get("displayName")) or ANONYMOUS_AUTHOR,
            )
        )
    return reviews


def parse_place_details(payload: Dict[str, Any]) -> PlaceDetailRecord:
    location = payload.get("location") or {}
    return PlaceDetailRecord(
        external_id=payload.get("id") or "",
        name=_localized_text(payload.get("displayName")) or UNKNOWN_NAME,
        address=_strip_or_empty(payload.get("formattedAddress")),
        latitude=_safe_float(location.get("latitude")),
        longitude=_safe_float(location.get("longitude")),
        rating=_safe_float(payload.get("rating")),
        price_level=payload.get("priceLevel"),
        phone=_strip_or_empty(payload.get("nationalPhoneNumber")),
        map_link=_strip_or_empty(payload.get("googleMapsUri")),
        website=payload.get("websiteUri") or None,
        photos=_parse_photos(payload.get("photos")),
        reviews=_parse_reviews(payload.get("reviews")),
        types=[t for t in payload.get("types") or [] if isinstance(t, str)],
        raw=payload,
    )


def review_source_id(place_id: str, review: ReviewSnippet) -> str:
    """Stable per-review key; falls back to a content hash when the API omits one."""
    if review.external_id:
        return review.external_id
    digest = hashlib.sha1(f"{place_id}|{review.author}|{review.text}".encode("utf-8")).hexdigest()
    return f"{place_id}:review:{digest[:16]}"


def to_restaurant_row(record: PlaceDetailRecord, source: str = SOURCE_GOOGLE) -> Dict[str, Any]:
    return {
        "source": source,
        "source_id": record.external_id,
        "name": record.name,
        "address": record.address,
        "lat": record.latitude,
        "lng": record.longitude,
        "map_link": record.map_link,
        "price": map_price_level(record.price_level),
        "phone": record.phone,
        "rating": record.rating,
        "website": record.website,
    }
