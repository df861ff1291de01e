from trust_safety.config.settings import Settings
from trust_safety.scoring.base import BaseScorer
from trust_safety.scoring.classifier_base import BaseContentClassifier
from trust_safety.scoring.content import ContentSafetyScorer
from trust_safety.scoring.cultural import CulturalSensitivityScorer
from trust_safety.scoring.example_classifier import ExampleContentClassifier
from trust_safety.scoring.fraud import FraudScorer
from trust_safety.scoring.models import ProviderKind
from trust_safety.scoring.openai_classifier import OpenAIModerationClassifier
from trust_safety.storage.base import BaseObjectStorage


class ScorerFactory:
    """Builds the provider registry, one scorer per ProviderKind."""

    CLASSIFIERS: tuple[str, ...] = ("example", "openai")

    @classmethod
    def create(
        cls,
        settings: Settings,
        storage: BaseObjectStorage,
    ) -> dict[ProviderKind, BaseScorer]:
        scorers: list[BaseScorer] = [
            ContentSafetyScorer(cls.create_classifier(settings), storage),
            CulturalSensitivityScorer(),
            FraudScorer(),
        ]
        registry = {scorer.kind: scorer for scorer in scorers}
        missing = set(ProviderKind) - set(registry)
        if missing:
            raise ValueError(f"No scorer registered for {sorted(k.value for k in missing)}")
        return registry

    @classmethod
    def create_classifier(cls, settings: Settings) -> BaseContentClassifier:
        provider = settings.content_safety_provider.lower()
        if provider == "example":
            return ExampleContentClassifier()
        if provider == "openai":
            if not settings.content_safety_openai_api_key:
                raise ValueError(
                    "content_safety_openai_api_key is required for content_safety_provider=openai"
                )
            return OpenAIModerationClassifier(
                api_key=settings.content_safety_openai_api_key,
                model=settings.content_safety_openai_model_name,
                # a hung request must give its thread back soon after the provider budget
                timeout_seconds=min(
                    settings.content_safety_openai_timeout_seconds,
                    settings.provider_timeout_seconds,
                ),
                base_url=settings.content_safety_openai_base_url,
            )
        raise ValueError(
            f"Unknown content safety provider '{provider}'. Choose from: {list(cls.CLASSIFIERS)}"
        )
