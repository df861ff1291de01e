from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from trust_safety.trust.models import TrustScore


class ProviderKind(str, Enum):
    CONTENT = "content"
    CULTURAL = "cultural"
    FRAUD = "fraud"

    @property
    def enrollment_threshold(self) -> float:
        """Scores at or above this value flag the submission."""
        return ENROLLMENT_THRESHOLDS[self]


ENROLLMENT_THRESHOLDS: dict[ProviderKind, float] = {
    ProviderKind.CONTENT: 0.8,
    ProviderKind.CULTURAL: 0.7,
    ProviderKind.FRAUD: 0.8,
}

HIGH_CONFIDENCE_FRAUD = 0.8


@dataclass(frozen=True)
class TransactionSummary:
    amount: float
    created_at: datetime
    successful: bool = True


@dataclass(frozen=True)
class ScoringContext:
    """Read-only facts about the submitter handed to every provider."""

    submitter_id: str
    trust_score: TrustScore | None = None
    declared_cultural_tags: tuple[str, ...] = ()
    cultural_background: tuple[str, ...] = ()
    account_created_at: datetime | None = None
    recent_transactions: tuple[TransactionSummary, ...] = ()
    now: datetime | None = None


@dataclass(frozen=True)
class AnalysisResult:
    """One provider's verdict. Immutable once attached to a submission."""

    provider: ProviderKind
    risk_score: float
    flags: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not 0.0 <= self.risk_score <= 1.0:
            raise ValueError(
                f"risk_score must be within [0.0, 1.0], got {self.risk_score}"
            )

    @property
    def exceeds_threshold(self) -> bool:
        return self.risk_score >= self.provider.enrollment_threshold

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider.value,
            "risk_score": self.risk_score,
            "flags": list(self.flags),
            "recommendations": list(self.recommendations),
            "metadata": dict(self.metadata),
        }
