from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class ContentClassification:
    """Backend verdict: confidence in [0, 1] that content violates policy."""

    confidence: float
    categories: tuple[str, ...] = ()
    details: str = ""
    category_scores: dict[str, float] = field(default_factory=dict)


class BaseContentClassifier(ABC):
    """Contract for content safety model backends."""

    @abstractmethod
    def classify(
        self,
        *,
        text: str,
        image_data_url: str | None = None,
    ) -> ContentClassification:
        """Classify listing text and an optional inline image."""
