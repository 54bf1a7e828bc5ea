"""OpenAI chat-completions wrapper used for image, review and score requests."""

import logging
from typing import Any, Dict, List, Optional

from openai import OpenAI

from restaurant_ingest.core.throttle import RateLimiter

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o"
IMAGE_MAX_TOKENS = 300
REVIEW_MAX_TOKENS = 400
SCORE_TEMPERATURE = 0.3

IMAGE_SYSTEM_PROMPT = """You are classifying restaurant images and generating descriptive tags.

Return JSON only:
{
  "category": "ambiance" | "food" | "other",
  "tags": ["tag1", "tag2", "tag3", "tag4", "tag5"]
}

Rules:
- Generate EXACTLY 5 contextual, multi-word descriptive tags (2-4 words each).
- Tags should be specific and descriptive (e.g., "rustic wooden decor", "crispy golden fries", "intimate candlelit atmosphere").
- Avoid generic single words - be specific and contextual.
- Tags should capture the essence, mood, quality, and distinctive features of the image."""

REVIEW_SYSTEM_PROMPT = """You are analyzing restaurant reviews to extract descriptive, multi-word contextual tags.

Return JSON only:
{
  "tags": [
    {"phrase": "descriptive phrase 1", "category": "cuisine" | "ambiance"},
    {"phrase": "descriptive phrase 2", "category": "cuisine" | "ambiance"},
    {"phrase": "descriptive phrase 3", "category": "cuisine" | "ambiance"},
    {"phrase": "descriptive phrase 4", "category": "cuisine" | "ambiance"},
    {"phrase": "descriptive phrase 5", "category": "cuisine" | "ambiance"}
  ]
}

Rules:
- Extract EXACTLY 5 descriptive, contextual tags from the review.
- Tags should be short phrases (2-5 words) that capture specific aspects of the experience.
- Categorize each tag as either "cuisine" (food-related) or "ambiance" (atmosphere/environment-related).
- Phrases should be descriptive and specific (e.g., "perfectly cooked pasta", "cozy romantic atmosphere").
- Convert all phrases to lowercase."""


class ClassificationError(RuntimeError):
    """Raised when the model returns no usable content."""


class ClassificationClient:
    """Submits prompts to the chat-completions API and returns the raw JSON text.

    Decoding is left to the caller so each call type can reject its own shape.
    """

    def __init__(
        self,
        api_key: str,
        *,
        model: str = DEFAULT_MODEL,
        limiter: Optional[RateLimiter] = None,
        client: Optional[Any] = None,
    ) -> None:
        if not api_key and client is None:
            raise ValueError("An OpenAI API key is required")
        self.model = model
        self.limiter = limiter or RateLimiter(name="classification")
        self._client = client or OpenAI(api_key=api_key)

    def complete_json(self, messages: List[Dict[str, Any]], **options: Any) -> str:
        self.limiter.throttle()
        response = self._client.chat.completions.create(
            model=self.model,
            messages=messages,
            response_format={"type": "json_object"},
            **options,
        )
        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content:
            raise ClassificationError("Empty response from OpenAI API")
        logger.debug("Model response: %s", content)
        return content

    def classify_image(self, data_uri: str) -> str:
        messages = [
            {"role": "system", "content": IMAGE_SYSTEM_PROMPT},
            {"role": "user", "content": [{"type": "image_url", "image_url": {"url": data_uri}}]},
        ]
        return self.complete_json(messages, max_tokens=IMAGE_MAX_TOKENS)

    def extract_review_tags(self, review_text: str) -> str:
        messages = [
            {"role": "system", "content": REVIEW_SYSTEM_PROMPT},
            {"role": "user", "content": f"Extract 5 contextual tags from this review:\n\n{review_text}"},
        ]
        return self.complete_json(messages, max_tokens=REVIEW_MAX_TOKENS)

    def score(self, prompt: str) -> str:
        return self.complete_json([{"role": "user", "content": prompt}], temperature=SCORE_TEMPERATURE)
