from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class VerificationType(str, Enum):
    PHONE = "phone"
    EMAIL = "email"
    GOVERNMENT_ID = "government_id"
    ADDRESS = "address"
    SOCIAL_MEDIA = "social_media"

    @property
    def trust_points(self) -> int:
        return VERIFICATION_POINTS[self]


VERIFICATION_POINTS: dict[VerificationType, int] = {
    VerificationType.PHONE: 1,
    VerificationType.EMAIL: 1,
    VerificationType.GOVERNMENT_ID: 3,
    VerificationType.ADDRESS: 2,
    VerificationType.SOCIAL_MEDIA: 1,
}
MAX_VERIFICATION_POINTS = sum(VERIFICATION_POINTS.values())


@dataclass(frozen=True)
class TrustSignals:
    """Inputs to a trust recompute, read from the accounts tables."""

    user_id: str
    approved_verifications: frozenset[VerificationType] = frozenset()
    total_transactions: int = 0
    successful_transactions: int = 0
    disputes_raised: int = 0
    reports_received: int = 0
    helpful_marks: int = 0
    verified_cultural_items: int = 0
    upheld_cultural_flags: int = 0


@dataclass(frozen=True)
class TrustScore:
    """Per-user composite score snapshot. Sub-scores are in [0, 10]."""

    user_id: str
    verification_score: float
    transaction_score: float
    community_score: float
    cultural_sensitivity_score: float
    overall_score: float
    total_transactions: int = 0
    successful_transactions: int = 0
    disputes_raised: int = 0
    reports_received: int = 0
    verified_cultural_items: int = 0
    updated_at: datetime | None = field(default=None, compare=False)

    @property
    def sub_scores(self) -> tuple[float, float, float, float]:
        return (
            self.verification_score,
            self.transaction_score,
            self.community_score,
            self.cultural_sensitivity_score,
        )
