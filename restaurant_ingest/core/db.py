"""Database helpers for the ingestion pipeline."""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from psycopg2 import extras, pool

from restaurant_ingest.core.config import get_settings
from restaurant_ingest.models import ImageAsset, RestaurantEntity, ReviewRecord, TagSummary

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "sql" / "schema.sql"

_connection_pool: Optional[pool.SimpleConnectionPool] = None


class DuplicateRestaurantError(RuntimeError):
    """Raised when a restaurant insert hits the (source, source_id) constraint."""


def init_pool(minconn: int = 1, maxconn: int = 5) -> pool.SimpleConnectionPool:
    """Initialise and return the shared connection pool."""
    global _connection_pool
    if _connection_pool is None:
        settings = get_settings()
        if not settings.database_url:
            raise RuntimeError("DATABASE_URL is required for database connections")
        _connection_pool = pool.SimpleConnectionPool(
            minconn,
            maxconn,
            dsn=settings.database_url,
            connect_timeout=10,
        )
        logger.info("Database connection pool initialised")
    return _connection_pool


def close_pool() -> None:
    global _connection_pool
    if _connection_pool is not None:
        _connection_pool.closeall()
        _connection_pool = None


@contextmanager
def get_connection():
    """Context manager yielding a pooled connection."""
    pg_pool = init_pool()
    conn = pg_pool.getconn()
    try:
        yield conn
    finally:
        pg_pool.putconn(conn)


@contextmanager
def transaction():
    """Yield a dict cursor; commit on success, roll back on any error."""
    with get_connection() as conn:
        try:
            with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                yield cur
            conn.commit()
        except Exception:
            conn.rollback()
            raise


def apply_schema(path: Path = SCHEMA_PATH) -> None:
    sql = Path(path).read_text(encoding="utf-8")
    with transaction() as cur:
        cur.execute(sql)
    logger.info("Applied schema from %s", path)


def _as_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)


def _to_restaurant(row: Dict[str, Any]) -> RestaurantEntity:
    return RestaurantEntity(
        id=row["id"],
        source=row["source"],
        source_id=row.get("source_id"),
        name=row["name"],
        latitude=float(row["lat"]),
        longitude=float(row["lng"]),
        price=row.get("price"),
        rating=_as_float(row.get("rating")),
        address=row.get("address") or "",
        phone=row.get("phone") or "",
        map_link=row.get("map_link") or "",
        ambiance_score=_as_float(row.get("ambiance_score")),
        food_quality_score=_as_float(row.get("food_quality_score")),
    )


def _to_image(row: Dict[str, Any]) -> ImageAsset:
    return ImageAsset(
        id=row["id"],
        restaurant_id=row["restaurant_id"],
        url=row["url"],
        source_id=row["source_id"],
        category=row.get("category"),
    )


def _to_review(row: Dict[str, Any]) -> ReviewRecord:
    return ReviewRecord(
        id=row["id"],
        restaurant_id=row["restaurant_id"],
        text=row.get("review") or "",
        rating=float(row.get("rating") or 0),
        author=row.get("posted_by") or "Anonymous",
        source_id=row["source_id"],
    )


_INSERT_RESTAURANT = """
INSERT INTO restaurants (
    source, source_id, name, address, lat, lng, map_link, price, phone, rating, website
) VALUES (
    %(source)s, %(source_id)s, %(name)s, %(address)s, %(lat)s, %(lng)s,
    %(map_link)s, %(price)s, %(phone)s, %(rating)s, %(website)s
)
ON CONFLICT (source, source_id) DO NOTHING
RETURNING *;
"""

_INSERT_IMAGE = """
INSERT INTO restaurant_images (restaurant_id, source, source_id, url)
VALUES (%(restaurant_id)s, %(source)s, %(source_id)s, %(url)s)
ON CONFLICT (source, source_id) DO NOTHING
RETURNING id;
"""

_INSERT_REVIEW = """
INSERT INTO reviews (restaurant_id, source, source_id, review, rating, posted_by)
VALUES (%(restaurant_id)s, %(source)s, %(source_id)s, %(review)s, %(rating)s, %(posted_by)s)
ON CONFLICT (source, source_id) DO NOTHING
RETURNING id;
"""

_UPSERT_TAG_TYPE = """
INSERT INTO tag_types (value) VALUES (%(value)s)
ON CONFLICT (value) DO UPDATE SET value = EXCLUDED.value
RETURNING id;
"""

_UPSERT_TAG = """
INSERT INTO tags (value, tag_type_id, source) VALUES (%(value)s, %(tag_type_id)s, %(source)s)
ON CONFLICT (value, tag_type_id) DO UPDATE SET value = EXCLUDED.value
RETURNING id;
"""

_UPDATE_SCORES = """
UPDATE restaurants SET
    ambiance_score = COALESCE(%(ambiance)s, ambiance_score),
    food_quality_score = COALESCE(%(food_quality)s, food_quality_score),
    updated_at = NOW()
WHERE id = %(id)s;
"""

_IMAGE_TAG_VALUES = """
SELECT t.value, MIN(it.image_id) AS first_image
FROM image_tags it
JOIN restaurant_images ri ON ri.id = it.image_id
JOIN tags t ON t.id = it.tag_id
WHERE ri.restaurant_id = %(id)s
GROUP BY t.value
ORDER BY first_image, t.value;
"""

_REVIEW_TAG_VALUES = """
SELECT t.value, MIN(rt.review_id) AS first_review
FROM review_tags rt
JOIN reviews r ON r.id = rt.review_id
JOIN tags t ON t.id = rt.tag_id
WHERE r.restaurant_id = %(id)s
GROUP BY t.value
ORDER BY first_review, t.value;
"""


def _insert_restaurant(cur, row: Dict[str, Any]) -> RestaurantEntity:
    if not row.get("name"):
        raise ValueError("name is required to create a restaurant")
    cur.execute(_INSERT_RESTAURANT, row)
    created = cur.fetchone()
    if not created:
        raise DuplicateRestaurantError(f"restaurant {row.get('source')}:{row.get('source_id')} already exists")
    logger.debug("Inserted restaurant %s", row.get("name"))
    return _to_restaurant(created)


def _insert_assets(cur, sql: str, restaurant_id: int, rows: Iterable[Dict[str, Any]]) -> int:
    inserted = 0
    for row in rows:
        cur.execute(sql, {**row, "restaurant_id": restaurant_id})
        if cur.fetchone():
            inserted += 1
    return inserted


def _upsert_tag_type(cur, value: str) -> int:
    cur.execute(_UPSERT_TAG_TYPE, {"value": value})
    return cur.fetchone()["id"]


def _upsert_tag(cur, value: str, tag_type_id: int, source: str) -> int:
    cur.execute(_UPSERT_TAG, {"value": value, "tag_type_id": tag_type_id, "source": source})
    return cur.fetchone()["id"]


def _link_restaurant_tags(cur, restaurant_id: int, tag_ids: Iterable[int]) -> None:
    for tag_id in tag_ids:
        cur.execute(
            "INSERT INTO restaurant_tags (restaurant_id, tag_id) VALUES (%(owner)s, %(tag)s) ON CONFLICT DO NOTHING;",
            {"owner": restaurant_id, "tag": tag_id},
        )


class PostgresStore:
    """Persistence operations used by the pipeline.

    Every call runs in its own committed transaction, so rows written earlier
    in a run are visible to later duplicate checks.
    """

    def find_restaurant_by_source(self, source: str, source_id: str) -> Optional[RestaurantEntity]:
        with transaction() as cur:
            cur.execute(
                "SELECT * FROM restaurants WHERE source = %(source)s AND source_id = %(source_id)s LIMIT 1;",
                {"source": source, "source_id": source_id},
            )
            row = cur.fetchone()
        return _to_restaurant(row) if row else None

    def find_restaurants_by_name(self, name: str) -> List[RestaurantEntity]:
        with transaction() as cur:
            cur.execute("SELECT * FROM restaurants WHERE name = %(name)s ORDER BY id;", {"name": name})
            rows = cur.fetchall()
        return [_to_restaurant(row) for row in rows]

    def get_restaurant(self, restaurant_id: int) -> Optional[RestaurantEntity]:
        with transaction() as cur:
            cur.execute("SELECT * FROM restaurants WHERE id = %(id)s;", {"id": restaurant_id})
            row = cur.fetchone()
        return _to_restaurant(row) if row else None

    def list_restaurants(
        self, *, skip_scored: bool = False, limit: Optional[int] = None, offset: int = 0
    ) -> List[RestaurantEntity]:
        sql = "SELECT * FROM restaurants"
        if skip_scored:
            sql += " WHERE ambiance_score IS NULL"
        sql += " ORDER BY id OFFSET %(offset)s"
        if limit is not None:
            sql += " LIMIT %(limit)s"
        with transaction() as cur:
            cur.execute(sql + ";", {"offset": max(0, offset), "limit": limit})
            rows = cur.fetchall()
        return [_to_restaurant(row) for row in rows]

    def persist_restaurant(
        self,
        row: Dict[str, Any],
        image_rows: Iterable[Dict[str, Any]],
        review_rows: Iterable[Dict[str, Any]],
        tags: Iterable[str],
        *,
        tag_type: str,
        tag_source: str,
    ) -> Tuple[RestaurantEntity, int, int]:
        """Write a restaurant with its assets and tags in one transaction.

        Either everything lands or nothing does, so a failed attempt leaves no
        restaurant row behind for the duplicate check to trip over.
        """
        with transaction() as cur:
            restaurant = _insert_restaurant(cur, row)
            images = _insert_assets(cur, _INSERT_IMAGE, restaurant.id, image_rows)
            reviews = _insert_assets(cur, _INSERT_REVIEW, restaurant.id, review_rows)
            tag_type_id = _upsert_tag_type(cur, tag_type)
            tag_ids = [_upsert_tag(cur, value, tag_type_id, tag_source) for value in tags]
            _link_restaurant_tags(cur, restaurant.id, tag_ids)
        return restaurant, images, reviews

    def list_images(self, restaurant_id: int) -> List[ImageAsset]:
        with transaction() as cur:
            cur.execute(
                "SELECT * FROM restaurant_images WHERE restaurant_id = %(id)s ORDER BY id;", {"id": restaurant_id}
            )
            rows = cur.fetchall()
        return [_to_image(row) for row in rows]

    def list_reviews(self, restaurant_id: int) -> List[ReviewRecord]:
        with transaction() as cur:
            cur.execute("SELECT * FROM reviews WHERE restaurant_id = %(id)s ORDER BY id;", {"id": restaurant_id})
            rows = cur.fetchall()
        return [_to_review(row) for row in rows]

    def list_unclassified_images(self, *, after_id: int = 0, limit: int = 10) -> List[ImageAsset]:
        with transaction() as cur:
            cur.execute(
                "SELECT * FROM restaurant_images WHERE category IS NULL AND id > %(after)s ORDER BY id LIMIT %(limit)s;",
                {"after": after_id, "limit": limit},
            )
            rows = cur.fetchall()
        return [_to_image(row) for row in rows]

    def list_untagged_reviews(self, *, after_id: int = 0, limit: int = 10) -> List[ReviewRecord]:
        with transaction() as cur:
            cur.execute(
                """
                SELECT r.* FROM reviews r
                WHERE r.id > %(after)s
                  AND btrim(r.review) <> ''
                  AND NOT EXISTS (SELECT 1 FROM review_tags rt WHERE rt.review_id = r.id)
                ORDER BY r.id LIMIT %(limit)s;
                """,
                {"after": after_id, "limit": limit},
            )
            rows = cur.fetchall()
        return [_to_review(row) for row in rows]

    def get_or_create_tag_type(self, value: str) -> int:
        with transaction() as cur:
            return _upsert_tag_type(cur, value)

    def get_or_create_tag(self, value: str, tag_type_id: int, source: str) -> int:
        with transaction() as cur:
            return _upsert_tag(cur, value, tag_type_id, source)

    def tag_image(self, image_id: int, category: str, tag_ids: Iterable[int]) -> None:
        with transaction() as cur:
            cur.execute(
                "UPDATE restaurant_images SET category = %(category)s WHERE id = %(id)s;",
                {"category": category, "id": image_id},
            )
            for tag_id in tag_ids:
                cur.execute(
                    "INSERT INTO image_tags (image_id, tag_id) VALUES (%(owner)s, %(tag)s) ON CONFLICT DO NOTHING;",
                    {"owner": image_id, "tag": tag_id},
                )

    def tag_review(self, review_id: int, tag_ids: Iterable[int]) -> None:
        with transaction() as cur:
            for tag_id in tag_ids:
                cur.execute(
                    "INSERT INTO review_tags (review_id, tag_id) VALUES (%(owner)s, %(tag)s) ON CONFLICT DO NOTHING;",
                    {"owner": review_id, "tag": tag_id},
                )

    def tag_summary(self, restaurant_id: int) -> TagSummary:
        with transaction() as cur:
            cur.execute(_IMAGE_TAG_VALUES, {"id": restaurant_id})
            image_rows = cur.fetchall()
            cur.execute(_REVIEW_TAG_VALUES, {"id": restaurant_id})
            review_rows = cur.fetchall()
        return TagSummary(
            image_tags=[row["value"] for row in image_rows],
            review_tags=[row["value"] for row in review_rows],
        )

    def update_scores(
        self, restaurant_id: int, *, ambiance: Optional[float] = None, food_quality: Optional[float] = None
    ) -> None:
        if ambiance is None and food_quality is None:
            return
        with transaction() as cur:
            cur.execute(_UPDATE_SCORES, {"id": restaurant_id, "ambiance": ambiance, "food_quality": food_quality})
        logger.debug("Updated scores for restaurant %s", restaurant_id)

