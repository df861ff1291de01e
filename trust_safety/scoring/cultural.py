"""Lexicon-based cultural sensitivity scorer.

Risk accumulates from independent signals and is capped at 1.0:

1. No overlap between the seller's cultural background and the declared tags
   (case-insensitive substring match in either direction): +0.4.
2. Sacred or ceremonial vocabulary in title or description: +0.6.
3. Mass-production vocabulary without any authenticity vocabulary: +0.3.

Every triggered signal contributes its own flag and recommendations.
"""

from typing import ClassVar

from trust_safety.intake.models import Submission
from trust_safety.scoring.base import BaseScorer
from trust_safety.scoring.models import AnalysisResult, ProviderKind, ScoringContext


class CulturalSensitivityScorer(BaseScorer):
    kind: ClassVar[ProviderKind] = ProviderKind.CULTURAL

    NO_CONNECTION_WEIGHT: ClassVar[float] = 0.4
    SACRED_WEIGHT: ClassVar[float] = 0.6
    MASS_PRODUCED_WEIGHT: ClassVar[float] = 0.3

    SACRED_TERMS: ClassVar[tuple[str, ...]] = (
        "sacred",
        "ceremonial",
        "ritual",
        "religious",
        "spiritual",
        "blessed",
        "consecrated",
        "holy",
        "temple",
        "shrine",
    )
    MASS_PRODUCED_TERMS: ClassVar[tuple[str, ...]] = (
        "factory made",
        "machine made",
        "bulk",
        "wholesale",
        "mass produced",
        "imported",
        "replica",
        "inspired by",
    )
    AUTHENTICITY_TERMS: ClassVar[tuple[str, ...]] = (
        "handmade",
        "artisan",
        "traditional",
        "authentic",
        "vintage",
        "heirloom",
        "original",
        "crafted by",
    )

    def score(self, submission: Submission, context: ScoringContext) -> AnalysisResult:
        return self.analyze(
            title=submission.title,
            description=submission.description,
            cultural_tags=context.declared_cultural_tags or submission.cultural_tags,
            seller_background=context.cultural_background,
        )

    def analyze(
        self,
        *,
        title: str,
        description: str,
        cultural_tags: tuple[str, ...] | list[str],
        seller_background: tuple[str, ...] | list[str],
    ) -> AnalysisResult:
        """Score raw listing text. Deterministic for identical inputs."""
        risk = 0.0
        flags: list[str] = []
        recommendations: list[str] = []
        text = f"{title}\n{description}".lower()

        has_connection = self._has_connection(cultural_tags, seller_background)
        if not has_connection and cultural_tags:
            risk += self.NO_CONNECTION_WEIGHT
            flags.append("Seller may not have direct cultural connection")
            recommendations.append(
                "Consider adding information about your connection to this cultural tradition"
            )

        contains_sacred = self._contains_any(text, self.SACRED_TERMS)
        if contains_sacred:
            risk += self.SACRED_WEIGHT
            flags.append("Item may have sacred or ceremonial significance")
            recommendations.append("Please verify this item is appropriate for sale")
            recommendations.append("Consider consulting with cultural authorities")

        mass_produced = self._contains_any(text, self.MASS_PRODUCED_TERMS)
        authentic = self._contains_any(text, self.AUTHENTICITY_TERMS)
        if mass_produced and not authentic:
            risk += self.MASS_PRODUCED_WEIGHT
            flags.append("Item appears to be mass-produced")
            recommendations.append(
                "Consider clarifying the authenticity and origin of the item"
            )

        return AnalysisResult(
            provider=self.kind,
            risk_score=round(min(risk, 1.0), 4),
            flags=tuple(flags),
            recommendations=tuple(recommendations),
            metadata={
                "has_connection": has_connection,
                "contains_sacred_terms": contains_sacred,
                "has_mass_produced_terms": mass_produced,
                "has_authenticity_terms": authentic,
            },
        )

    @staticmethod
    def _has_connection(
        cultural_tags: tuple[str, ...] | list[str],
        seller_background: tuple[str, ...] | list[str],
    ) -> bool:
        for tag in cultural_tags:
            tag_lower = tag.lower()
            for background in seller_background:
                background_lower = background.lower()
                if not background_lower or not tag_lower:
                    continue
                if background_lower in tag_lower or tag_lower in background_lower:
                    return True
        return False

    @staticmethod
    def _contains_any(text: str, terms: tuple[str, ...]) -> bool:
        return any(term in text for term in terms)
