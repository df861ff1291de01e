import base64
from typing import ClassVar

from trust_safety.intake.models import Submission
from trust_safety.scoring.base import BaseScorer
from trust_safety.scoring.classifier_base import BaseContentClassifier
from trust_safety.scoring.models import AnalysisResult, ProviderKind, ScoringContext
from trust_safety.storage.base import BaseObjectStorage


class ContentSafetyScorer(BaseScorer):
    """Scores policy-violation confidence of uploaded images and listing text.

    Confidence above 0.8 is a provisional ``flagged`` disposition; the final
    decision is made by the orchestrator.
    """

    kind: ClassVar[ProviderKind] = ProviderKind.CONTENT

    FLAG_CONFIDENCE: ClassVar[float] = 0.8

    def __init__(
        self,
        classifier: BaseContentClassifier,
        storage: BaseObjectStorage,
    ) -> None:
        self._classifier = classifier
        self._storage = storage

    def score(self, submission: Submission, context: ScoringContext) -> AnalysisResult:
        _ = context
        text = "\n".join(part for part in (submission.title, submission.description) if part)
        classification = self._classifier.classify(
            text=text,
            image_data_url=self._image_data_url(submission),
        )

        provisional = "flagged" if classification.confidence > self.FLAG_CONFIDENCE else "approved"
        flags: list[str] = []
        recommendations: list[str] = []
        if provisional == "flagged":
            flags.append("Potentially inappropriate content detected")
            flags.extend(f"category:{name}" for name in classification.categories)
            recommendations.append("Review the content against the community guidelines")

        return AnalysisResult(
            provider=self.kind,
            risk_score=round(classification.confidence, 4),
            flags=tuple(flags),
            recommendations=tuple(recommendations),
            metadata={
                "provisional_disposition": provisional,
                "details": classification.details,
                "category_scores": dict(classification.category_scores),
            },
        )

    def _image_data_url(self, submission: Submission) -> str | None:
        if submission.artifact_url is None:
            return None
        media_type = str(submission.payload.get("media_type") or "application/octet-stream")
        content = self._storage.fetch(submission.artifact_url)
        encoded = base64.b64encode(content).decode("ascii")
        return f"data:{media_type};base64,{encoded}"
