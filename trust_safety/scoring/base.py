from abc import ABC, abstractmethod
from typing import ClassVar

from trust_safety.intake.models import Submission
from trust_safety.scoring.models import AnalysisResult, ProviderKind, ScoringContext


class BaseScorer(ABC):
    """Contract for all scoring providers.

    Implementations must not write shared state and must return within the
    orchestrator's time budget; anything slower is recorded as a timeout.
    """

    kind: ClassVar[ProviderKind]

    @abstractmethod
    def score(self, submission: Submission, context: ScoringContext) -> AnalysisResult:
        """Score one submission.

        Args:
            submission: The submission under analysis (read-only).
            context: Submitter facts loaded by the orchestrator.

        Returns:
            AnalysisResult whose provider equals ``self.kind``.

        Raises:
            ProviderError: if no result can be produced.
        """
