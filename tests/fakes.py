"""In-memory stand-ins for the database, Places API and OpenAI clients."""

import itertools
import json
from typing import Any, Dict, List, Optional, Tuple

from restaurant_ingest.core.db import DuplicateRestaurantError
from restaurant_ingest.models import ImageAsset, RestaurantEntity, ReviewRecord, TagSummary
from restaurant_ingest.vendors.google_places import GooglePlacesError

IMAGE_REPLY = json.dumps(
    {
        "category": "ambiance",
        "tags": ["rustic wooden decor", "warm string lights", "cozy corner booths", "exposed brick", "vintage posters"],
    }
)

REVIEW_REPLY = json.dumps(
    {
        "tags": [
            {"phrase": "Perfectly Cooked Pasta", "category": "cuisine"},
            {"phrase": "cozy romantic atmosphere", "category": "ambiance"},
            {"phrase": "rich tomato sauce", "category": "cuisine"},
            {"phrase": "attentive friendly staff", "category": "ambiance"},
            {"phrase": "generous portions", "category": "cuisine"},
        ]
    }
)

AMBIANCE_REPLY = json.dumps(
    {"vibrant": 7, "romantic": 8, "trendy": 6, "stylish": 7, "immersive": 5, "inviting": 9, "overall": 7.5}
)

FOOD_REPLY = json.dumps(
    {"flavorful": 8, "authentic": 7, "satisfying": 8, "comforting": 9, "aromatic": 7, "appetizing": 8, "overall": 8}
)


def score_reply(prompt: str) -> str:
    return AMBIANCE_REPLY if "restaurant's ambiance" in prompt else FOOD_REPLY


def _respond(reply: Any, argument: Any) -> str:
    if isinstance(reply, BaseException):
        raise reply
    if callable(reply):
        return reply(argument)
    return reply


class FlakyReply:
    """Raise ``failures`` times, then keep returning ``reply``."""

    def __init__(self, failures: int, reply: str, error: Optional[BaseException] = None) -> None:
        self.failures = failures
        self.reply = reply
        self.error = error or RuntimeError("service unavailable")
        self.calls = 0

    def __call__(self, argument: Any) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.reply


class FakeClassifier:
    def __init__(self, image_reply: Any = IMAGE_REPLY, review_reply: Any = REVIEW_REPLY, score: Any = score_reply):
        self.image_reply = image_reply
        self.review_reply = review_reply
        self.score_reply = score
        self.image_calls: List[str] = []
        self.review_calls: List[str] = []
        self.score_calls: List[str] = []

    def classify_image(self, data_uri: str) -> str:
        self.image_calls.append(data_uri)
        return _respond(self.image_reply, data_uri)

    def extract_review_tags(self, text: str) -> str:
        self.review_calls.append(text)
        return _respond(self.review_reply, text)

    def score(self, prompt: str) -> str:
        self.score_calls.append(prompt)
        return _respond(self.score_reply, prompt)


def place_payload(place_id: str, name: str = "Casa Roma", **overrides: Any) -> Dict[str, Any]:
    payload = {
        "id": place_id,
        "displayName": {"text": name, "languageCode": "en"},
        "formattedAddress": "1 Main St, Austin, TX",
        "location": {"latitude": 30.2672, "longitude": -97.7431},
        "rating": 4.6,
        "priceLevel": "PRICE_LEVEL_MODERATE",
        "nationalPhoneNumber": "(512) 555-0100",
        "googleMapsUri": f"https://maps.google.com/?cid={place_id}",
        "websiteUri": "https://casaroma.example",
        "photos": [{"name": f"places/{place_id}/photos/p{i}", "widthPx": 1200, "heightPx": 800} for i in range(3)],
        "reviews": [
            {
                "name": f"places/{place_id}/reviews/r{i}",
                "text": {"text": f"Great pasta number {i}", "languageCode": "en"},
                "rating": 5,
                "authorAttribution": {"displayName": f"Guest {i}"},
            }
            for i in range(2)
        ],
        "types": ["italian_restaurant", "restaurant", "food"],
    }
    payload.update(overrides)
    return payload


class FakePlacesClient:
    """Serves canned search pages (keyed by location name) and detail payloads."""

    def __init__(self, pages: Optional[Dict[str, List[List[Dict]]]] = None, details: Optional[Dict] = None):
        self.pages = pages or {}
        self.details = details or {}
        self.search_calls: List[Tuple[str, str, Optional[str]]] = []
        self.detail_calls: List[str] = []
        self.media_calls: List[str] = []

    def search_text(self, query, location, page_token=None, max_results=20):
        self.search_calls.append((query, location.name, page_token))
        pages = self.pages.get(location.name, [])
        index = int(page_token) if page_token else 0
        if index >= len(pages):
            return {"places": [], "nextPageToken": None}
        next_token = str(index + 1) if index + 1 < len(pages) else None
        return {"places": pages[index], "nextPageToken": next_token}

    def place_details(self, place_id):
        self.detail_calls.append(place_id)
        if place_id not in self.details:
            raise GooglePlacesError(f"HTTP 404: {place_id} not found", status_code=404)
        return self.details[place_id]

    def fetch_media(self, url):
        self.media_calls.append(url)
        return b"\xff\xd8\xff\xe0fake-jpeg", "image/jpeg"


class InMemoryStore:
    """Mirrors PostgresStore, including its uniqueness constraints."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.restaurants: Dict[int, RestaurantEntity] = {}
        self.images: Dict[int, ImageAsset] = {}
        self.reviews: Dict[int, ReviewRecord] = {}
        self.tag_types: Dict[str, int] = {}
        self.tags: Dict[Tuple[str, int], int] = {}
        self.tag_sources: Dict[int, str] = {}
        self.tag_values: Dict[int, str] = {}
        self.restaurant_tags: Dict[Tuple[int, int], None] = {}
        self.image_tags: Dict[Tuple[int, int], None] = {}
        self.review_tags: Dict[Tuple[int, int], None] = {}
        self._restaurant_keys: Dict[Tuple[str, str], int] = {}
        self._image_keys: Dict[Tuple[str, str], int] = {}
        self._review_keys: Dict[Tuple[str, str], int] = {}

    def _tables(self):
        return [
            self.restaurants,
            self.images,
            self.reviews,
            self.tag_types,
            self.tags,
            self.tag_sources,
            self.tag_values,
            self.restaurant_tags,
            self._restaurant_keys,
            self._image_keys,
            self._review_keys,
        ]

    # ---------- Restaurants ----------

    def find_restaurant_by_source(self, source, source_id):
        restaurant_id = self._restaurant_keys.get((source, source_id))
        return self.restaurants.get(restaurant_id) if restaurant_id else None

    def find_restaurants_by_name(self, name):
        return [r for r in self.restaurants.values() if r.name == name]

    def get_restaurant(self, restaurant_id):
        return self.restaurants.get(restaurant_id)

    def list_restaurants(self, *, skip_scored=False, limit=None, offset=0):
        rows = sorted(self.restaurants.values(), key=lambda r: r.id)
        if skip_scored:
            rows = [r for r in rows if r.ambiance_score is None]
        rows = rows[max(0, offset):]
        return rows if limit is None else rows[:limit]

    def create_restaurant(self, row):
        if not row.get("name"):
            raise ValueError("name is required to create a restaurant")
        key = (row["source"], row["source_id"])
        if key in self._restaurant_keys:
            raise DuplicateRestaurantError(f"restaurant {key[0]}:{key[1]} already exists")
        restaurant = RestaurantEntity(
            id=next(self._ids),
            source=row["source"],
            source_id=row["source_id"],
            name=row["name"],
            latitude=row["lat"],
            longitude=row["lng"],
            price=row.get("price"),
            rating=row.get("rating"),
            address=row.get("address") or "",
            phone=row.get("phone") or "",
            map_link=row.get("map_link") or "",
        )
        self.restaurants[restaurant.id] = restaurant
        self._restaurant_keys[key] = restaurant.id
        return restaurant

    def persist_restaurant(self, row, image_rows, review_rows, tags, *, tag_type, tag_source):
        snapshot = [dict(table) for table in self._tables()]
        try:
            restaurant = self.create_restaurant(row)
            images = self.add_images(restaurant.id, image_rows)
            reviews = self.add_reviews(restaurant.id, review_rows)
            tag_type_id = self.get_or_create_tag_type(tag_type)
            tag_ids = [self.get_or_create_tag(value, tag_type_id, tag_source) for value in tags]
            self.link_restaurant_tags(restaurant.id, tag_ids)
        except Exception:
            for table, saved in zip(self._tables(), snapshot):
                table.clear()
                table.update(saved)
            raise
        return restaurant, images, reviews

    def update_scores(self, restaurant_id, *, ambiance=None, food_quality=None):
        restaurant = self.restaurants[restaurant_id]
        if ambiance is not None:
            restaurant.ambiance_score = ambiance
        if food_quality is not None:
            restaurant.food_quality_score = food_quality

    # ---------- Assets ----------

    def add_images(self, restaurant_id, rows):
        inserted = 0
        for row in rows:
            key = (row["source"], row["source_id"])
            if key in self._image_keys:
                continue
            image = ImageAsset(id=next(self._ids), restaurant_id=restaurant_id, url=row["url"], source_id=row["source_id"])
            self.images[image.id] = image
            self._image_keys[key] = image.id
            inserted += 1
        return inserted

    def add_reviews(self, restaurant_id, rows):
        inserted = 0
        for row in rows:
            key = (row["source"], row["source_id"])
            if key in self._review_keys:
                continue
            review = ReviewRecord(
                id=next(self._ids),
                restaurant_id=restaurant_id,
                text=row["review"],
                rating=row["rating"],
                author=row["posted_by"],
                source_id=row["source_id"],
            )
            self.reviews[review.id] = review
            self._review_keys[key] = review.id
            inserted += 1
        return inserted

    def list_images(self, restaurant_id):
        return [i for i in sorted(self.images.values(), key=lambda i: i.id) if i.restaurant_id == restaurant_id]

    def list_reviews(self, restaurant_id):
        return [r for r in sorted(self.reviews.values(), key=lambda r: r.id) if r.restaurant_id == restaurant_id]

    def list_unclassified_images(self, *, after_id=0, limit=10):
        rows = [i for i in sorted(self.images.values(), key=lambda i: i.id) if i.category is None and i.id > after_id]
        return rows[:limit]

    def list_untagged_reviews(self, *, after_id=0, limit=10):
        tagged = {review_id for review_id, _ in self.review_tags}
        rows = [
            r
            for r in sorted(self.reviews.values(), key=lambda r: r.id)
            if r.id > after_id and r.text.strip() and r.id not in tagged
        ]
        return rows[:limit]

    # ---------- Tags ----------

    def get_or_create_tag_type(self, value):
        if value not in self.tag_types:
            self.tag_types[value] = next(self._ids)
        return self.tag_types[value]

    def get_or_create_tag(self, value, tag_type_id, source):
        key = (value, tag_type_id)
        if key not in self.tags:
            tag_id = next(self._ids)
            self.tags[key] = tag_id
            self.tag_values[tag_id] = value
            self.tag_sources[tag_id] = source
        return self.tags[key]

    def link_restaurant_tags(self, restaurant_id, tag_ids):
        for tag_id in tag_ids:
            self.restaurant_tags[(restaurant_id, tag_id)] = None

    def tag_image(self, image_id, category, tag_ids):
        self.images[image_id].category = category
        for tag_id in tag_ids:
            self.image_tags[(image_id, tag_id)] = None

    def tag_review(self, review_id, tag_ids):
        for tag_id in tag_ids:
            self.review_tags[(review_id, tag_id)] = None

    def tag_summary(self, restaurant_id):
        def values(pairs, owners):
            ordered = []
            for owner_id in sorted(owners):
                for pair_owner, tag_id in pairs:
                    value = self.tag_values[tag_id]
                    if pair_owner == owner_id and value not in ordered:
                        ordered.append(value)
            return ordered

        image_ids = [i.id for i in self.list_images(restaurant_id)]
        review_ids = [r.id for r in self.list_reviews(restaurant_id)]
        return TagSummary(
            image_tags=values(self.image_tags, image_ids),
            review_tags=values(self.review_tags, review_ids),
        )

    # ---------- Test helpers ----------

    def tags_for_image(self, image_id):
        return [self.tag_values[tag_id] for owner, tag_id in self.image_tags if owner == image_id]

    def tags_for_review(self, review_id):
        return [self.tag_values[tag_id] for owner, tag_id in self.review_tags if owner == review_id]

    def restaurant_tag_values(self, restaurant_id):
        return [self.tag_values[tag_id] for owner, tag_id in self.restaurant_tags if owner == restaurant_id]
