from dataclasses import dataclass, field
from typing import Any

from trust_safety.intake.models import Disposition, Submission, SubmissionKind
from trust_safety.moderation.models import EnrollmentResult
from trust_safety.scoring.models import AnalysisResult, ProviderKind


def applicable_providers(submission: Submission) -> tuple[ProviderKind, ...]:
    """Providers that run for a submission, by kind."""
    if submission.kind == SubmissionKind.PAYMENT:
        return (ProviderKind.FRAUD,)
    if submission.kind == SubmissionKind.LISTING:
        return (ProviderKind.CONTENT, ProviderKind.CULTURAL)
    if submission.cultural_tags or submission.title or submission.description:
        return (ProviderKind.CONTENT, ProviderKind.CULTURAL)
    return (ProviderKind.CONTENT,)


def aggregate_disposition(results: list[AnalysisResult]) -> Disposition:
    """``safe`` only when every available score is below its provider threshold."""
    if any(result.exceeds_threshold for result in results):
        return Disposition.FLAGGED
    return Disposition.SAFE


@dataclass(frozen=True)
class AnalysisOutcome:
    """What one analysis pass decided for a submission."""

    submission_id: str
    disposition: Disposition
    results: list[AnalysisResult]
    skipped: dict[ProviderKind, str] = field(default_factory=dict)
    enrollment: EnrollmentResult | None = None
    security_flagged: bool = False

    @property
    def max_risk_score(self) -> float:
        return max((result.risk_score for result in self.results), default=0.0)

    def to_summary(self) -> dict[str, Any]:
        return {
            "disposition": self.disposition.value,
            "max_risk_score": self.max_risk_score,
            "scores": {result.provider.value: result.risk_score for result in self.results},
            "skipped": {kind.value: error for kind, error in self.skipped.items()},
            "moderation_item_id": self.enrollment.item_id if self.enrollment else None,
            "security_flagged": self.security_flagged,
        }
