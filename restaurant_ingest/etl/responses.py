"""Typed shapes for model replies; anything that does not fit is rejected."""

from __future__ import annotations

import json
from typing import List, Literal, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

EXPECTED_TAG_COUNT = 5

M = TypeVar("M", bound=BaseModel)


class ResponseDecodeError(ValueError):
    """Raised when a model reply is not JSON or does not match its schema."""


def _clean_phrase(value: str) -> str:
    cleaned = " ".join(value.split())
    if not cleaned:
        raise ValueError("tag must not be blank")
    return cleaned


class ImageClassification(BaseModel):
    model_config = ConfigDict(extra="ignore")

    category: Literal["ambiance", "food", "other"]
    tags: List[str] = Field(min_length=EXPECTED_TAG_COUNT, max_length=EXPECTED_TAG_COUNT)

    @field_validator("category", mode="before")
    @classmethod
    def _normalise_category(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("tags")
    @classmethod
    def _strip_tags(cls, value: List[str]) -> List[str]:
        return [_clean_phrase(tag) for tag in value]


class ReviewTag(BaseModel):
    model_config = ConfigDict(extra="ignore")

    phrase: str
    category: Literal["cuisine", "ambiance"]

    @field_validator("category", mode="before")
    @classmethod
    def _normalise_category(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("phrase")
    @classmethod
    def _lower_phrase(cls, value: str) -> str:
        return _clean_phrase(value).lower()


class ReviewTagging(BaseModel):
    model_config = ConfigDict(extra="ignore")

    tags: List[ReviewTag] = Field(min_length=EXPECTED_TAG_COUNT, max_length=EXPECTED_TAG_COUNT)


class AmbianceScores(BaseModel):
    model_config = ConfigDict(extra="ignore")

    vibrant: float
    romantic: float
    trendy: float
    stylish: float
    immersive: float
    inviting: float
    overall: float


class FoodQualityScores(BaseModel):
    model_config = ConfigDict(extra="ignore")

    flavorful: float
    authentic: float
    satisfying: float
    comforting: float
    aromatic: float
    appetizing: float
    overall: float


def decode_response(content: str, model: Type[M]) -> M:
    """Parse ``content`` as JSON and validate it against ``model``."""
    try:
        payload = json.loads(content)
    except (TypeError, json.JSONDecodeError) as exc:
        raise ResponseDecodeError(f"{model.__name__}: reply is not valid JSON ({exc})") from exc
    if not isinstance(payload, dict):
        raise ResponseDecodeError(f"{model.__name__}: expected a JSON object, got {type(payload).__name__}")
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise ResponseDecodeError(f"{model.__name__}: {exc.error_count()} validation error(s): {exc}") from exc
