"""Core data models shared by the restaurant ingestion pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

SOURCE_GOOGLE = "GOOGLE"


@dataclass(frozen=True, slots=True)
class SearchLocation:
    """Seed for a geo-bounded discovery query."""

    name: str
    latitude: float
    longitude: float
    radius: float = 2000.0


@dataclass(frozen=True, slots=True)
class CandidatePlace:
    external_id: str
    display_name: str


@dataclass(slots=True)
class PhotoReference:
    name: str
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass(slots=True)
class ReviewSnippet:
    external_id: Optional[str]
    text: str
    rating: float = 0.0
    author: str = "Anonymous"


@dataclass(slots=True)
class PlaceDetailRecord:
    """Full attributes fetched for one candidate; consumed right after fetching."""

    external_id: str
    name: str
    address: str = ""
    latitude: float = 0.0
    longitude: float = 0.0
    rating: float = 0.0
    price_level: Optional[str] = None
    phone: str = ""
    map_link: str = ""
    website: Optional[str] = None
    photos: List[PhotoReference] = field(default_factory=list)
    reviews: List[ReviewSnippet] = field(default_factory=list)
    types: List[str] = field(default_factory=list)
    raw: Optional[Dict[str, Any]] = field(default=None, repr=False)


@dataclass(slots=True)
class RestaurantEntity:
    id: int
    source: str
    source_id: Optional[str]
    name: str
    latitude: float
    longitude: float
    price: Optional[str] = None
    rating: Optional[float] = None
    address: str = ""
    phone: str = ""
    map_link: str = ""
    ambiance_score: Optional[float] = None
    food_quality_score: Optional[float] = None


@dataclass(slots=True)
class ImageAsset:
    id: int
    restaurant_id: int
    url: str
    source_id: str
    category: Optional[str] = None


@dataclass(slots=True)
class ReviewRecord:
    id: int
    restaurant_id: int
    text: str
    rating: float
    author: str
    source_id: str


@dataclass(slots=True)
class TagSummary:
    """Tag values attached to a restaurant's images and reviews."""

    image_tags: List[str] = field(default_factory=list)
    review_tags: List[str] = field(default_factory=list)

    def aggregated(self) -> List[str]:
        seen = set()
        values: List[str] = []
        for value in self.image_tags + self.review_tags:
            if value not in seen:
                seen.add(value)
                values.append(value)
        return values


class CandidateState(str, Enum):
    DISCOVERED = "discovered"
    DETAILS_FETCHED = "details_fetched"
    SKIPPED = "skipped"
    PERSISTED = "persisted"
    IMAGES_TAGGED = "images_tagged"
    REVIEWS_TAGGED = "reviews_tagged"
    SCORED = "scored"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(slots=True)
class TaggingTally:
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0


@dataclass(slots=True)
class ScoreReport:
    ambiance: Optional[float] = None
    food_quality: Optional[float] = None
    errors: Dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class CandidateReport:
    candidate: CandidatePlace
    state: CandidateState = CandidateState.DISCOVERED
    restaurant_id: Optional[int] = None
    failed_stage: Optional[str] = None
    error: Optional[str] = None
    skip_reason: Optional[str] = None
    images: Optional[TaggingTally] = None
    reviews: Optional[TaggingTally] = None
    scores: Optional[ScoreReport] = None


@dataclass(slots=True)
class RunSummary:
    total: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    elapsed_seconds: float = 0.0
    reports: List[CandidateReport] = field(default_factory=list, repr=False)

    def record(self, report: CandidateReport) -> None:
        self.total += 1
        self.reports.append(report)
        if report.state == CandidateState.COMPLETE:
            self.succeeded += 1
        elif report.state == CandidateState.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1

    def failures(self) -> List[CandidateReport]:
        return [report for report in self.reports if report.state == CandidateState.FAILED]
