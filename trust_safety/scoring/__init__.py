from trust_safety.scoring.base import BaseScorer
from trust_safety.scoring.content import ContentSafetyScorer
from trust_safety.scoring.cultural import CulturalSensitivityScorer
from trust_safety.scoring.factory import ScorerFactory
from trust_safety.scoring.fraud import FraudScorer

__all__ = [
    "BaseScorer",
    "ContentSafetyScorer",
    "CulturalSensitivityScorer",
    "FraudScorer",
    "ScorerFactory",
]
