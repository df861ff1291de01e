"""Example content classifier.

Use this module as a reference when implementing new classifier backends.
Implement BaseContentClassifier and register the backend in ScorerFactory.
"""

from trust_safety.scoring.classifier_base import BaseContentClassifier, ContentClassification


class ExampleContentClassifier(BaseContentClassifier):
    """Deterministic classifier that approves everything.

    No network calls. Useful for local development and tests.
    """

    def classify(
        self,
        *,
        text: str,
        image_data_url: str | None = None,
    ) -> ContentClassification:
        _ = text, image_data_url
        return ContentClassification(confidence=0.0, details="Content appears appropriate")
