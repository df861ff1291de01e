from typing import Any

import httpx
import openai

from trust_safety.scoring.classifier_base import BaseContentClassifier, ContentClassification
from trust_safety.scoring.exceptions import ContentClassifierError, ContentClassifierNetworkError


class OpenAIModerationClassifier(BaseContentClassifier):
    """Content classifier built on the OpenAI moderation endpoint."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        timeout_seconds: float,
        base_url: str | None = None,
    ) -> None:
        self._model = model
        self._client = openai.OpenAI(
            api_key=api_key,
            timeout=timeout_seconds,
            base_url=base_url,
        )

    def classify(
        self,
        *,
        text: str,
        image_data_url: str | None = None,
    ) -> ContentClassification:
        inputs: list[dict[str, Any]] = []
        if text.strip():
            inputs.append({"type": "text", "text": text})
        if image_data_url is not None:
            inputs.append({"type": "image_url", "image_url": {"url": image_data_url}})
        if not inputs:
            return ContentClassification(confidence=0.0, details="Nothing to classify")

        try:
            response = self._client.moderations.create(model=self._model, input=inputs)
        except (openai.APIConnectionError, httpx.ConnectError, httpx.TimeoutException) as exc:
            raise ContentClassifierNetworkError(
                f"Moderation provider network error: {exc}"
            ) from exc
        except openai.APIError as exc:
            raise ContentClassifierNetworkError(
                f"Moderation provider API error: {exc}"
            ) from exc

        if not response.results:
            raise ContentClassifierError("Moderation provider returned no results")

        result = response.results[0]
        scores = {
            name: float(value)
            for name, value in result.category_scores.model_dump().items()
            if value is not None
        }
        flagged = tuple(
            sorted(name for name, hit in result.categories.model_dump().items() if hit)
        )
        confidence = max(scores.values(), default=0.0)
        return ContentClassification(
            confidence=min(max(confidence, 0.0), 1.0),
            categories=flagged,
            details="Flagged by moderation model" if result.flagged else "",
            category_scores=scores,
        )
