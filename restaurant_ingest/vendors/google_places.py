"""Client utilities for the Google Places API (v1)."""

import logging
from typing import Any, Dict, Optional, Tuple

import requests

from restaurant_ingest.core.throttle import RateLimiter
from restaurant_ingest.models import SearchLocation

logger = logging.getLogger(__name__)

_BASE_URL = "https://places.googleapis.com/v1"
_SEARCH_FIELD_MASK = "places.id,places.displayName,nextPageToken"
_DETAIL_FIELDS = (
    "id",
    "displayName",
    "formattedAddress",
    "location",
    "rating",
    "userRatingCount",
    "priceLevel",
    "nationalPhoneNumber",
    "websiteUri",
    "googleMapsUri",
    "photos",
    "reviews",
    "types",
)
REQUEST_TIMEOUT = 10
MEDIA_TIMEOUT = 30
MAX_RESULTS_PER_SEARCH = 20
PHOTO_MAX_WIDTH = 800


class GooglePlacesError(RuntimeError):
    """Raised when the Places API returns a non-successful response."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _raise_for_status(response: requests.Response, operation: str) -> None:
    if 200 <= response.status_code < 300:
        return
    body = (response.text or "")[:500]
    logger.error("%s failed: status=%s body=%s", operation, response.status_code, body)
    raise GooglePlacesError(f"HTTP {response.status_code}: {body}", status_code=response.status_code)


class GooglePlacesClient:
    """Thin wrapper around the Places search, detail and media endpoints.

    Each request waits on the injected :class:`RateLimiter` first, so callers
    that share one limiter share one request budget.
    """

    def __init__(
        self,
        api_key: str,
        *,
        session: Optional[requests.Session] = None,
        limiter: Optional[RateLimiter] = None,
        timeout: int = REQUEST_TIMEOUT,
    ) -> None:
        if not api_key:
            raise ValueError("A Google Places API key is required")
        self.api_key = api_key
        self.session = session or requests.Session()
        self.limiter = limiter or RateLimiter(name="places")
        self.timeout = timeout

    def _headers(self, field_mask: Optional[str] = None) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "X-Goog-Api-Key": self.api_key}
        if field_mask:
            headers["X-Goog-FieldMask"] = field_mask
        return headers

    def search_text(
        self,
        query: str,
        location: SearchLocation,
        page_token: Optional[str] = None,
        max_results: int = MAX_RESULTS_PER_SEARCH,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "textQuery": query,
            "locationBias": {
                "circle": {
                    "center": {"latitude": location.latitude, "longitude": location.longitude},
                    "radius": location.radius,
                }
            },
            "maxResultCount": max_results,
        }
        if page_token:
            body["pageToken"] = page_token

        self.limiter.throttle()
        response = self.session.post(
            f"{_BASE_URL}/places:searchText",
            json=body,
            headers=self._headers(_SEARCH_FIELD_MASK),
            timeout=self.timeout,
        )
        _raise_for_status(response, "search_text")
        payload = response.json() or {}
        return {"places": payload.get("places") or [], "nextPageToken": payload.get("nextPageToken")}

    def place_details(self, place_id: str) -> Dict[str, Any]:
        if not place_id:
            raise ValueError("place_id is required")
        self.limiter.throttle()
        response = self.session.get(
            f"{_BASE_URL}/places/{place_id}",
            headers=self._headers(",".join(_DETAIL_FIELDS)),
            timeout=self.timeout,
        )
        _raise_for_status(response, "place_details")
        payload = response.json()
        if not isinstance(payload, dict) or not payload.get("id"):
            raise GooglePlacesError(f"place_details returned an unexpected payload for {place_id}")
        return payload

    def fetch_media(self, url: str) -> Tuple[bytes, str]:
        """Download raw image bytes; the API key is only sent to the Places host."""
        headers = {"X-Goog-Api-Key": self.api_key} if url.startswith(_BASE_URL) else {}
        self.limiter.throttle()
        response = self.session.get(url, headers=headers, timeout=MEDIA_TIMEOUT, allow_redirects=True)
        _raise_for_status(response, "fetch_media")
        content_type = response.headers.get("Content-Type") or "image/jpeg"
        return response.content, content_type.split(";")[0].strip()


def photo_media_url(photo_name: str, max_width: int = PHOTO_MAX_WIDTH) -> str:
    return f"{_BASE_URL}/{photo_name}/media?maxWidthPx={max_width}"
