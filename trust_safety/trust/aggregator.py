from trust_safety.database.connection import get_connection
from trust_safety.database.repositories.account_repository import AccountRepository
from trust_safety.database.repositories.trust_score_repository import TrustScoreRepository
from trust_safety.logging.logger import Log
from trust_safety.metrics.sink import Counter, MetricsSink
from trust_safety.trust.models import (
    MAX_VERIFICATION_POINTS,
    TrustScore,
    TrustSignals,
    VerificationType,
)

NEUTRAL_SCORE = 5.0
MIN_SCORE = 0.0
MAX_SCORE = 10.0

OVERALL_WEIGHTS = {
    "verification": 0.3,
    "transaction": 0.3,
    "community": 0.2,
    "cultural": 0.2,
}

# transaction sub-score reaches full weight at this volume
TRANSACTION_VOLUME_CAP = 20
DISPUTE_PENALTY = 0.5
REPORT_PENALTY = 1.0
HELPFUL_MARK_REWARD = 0.25
VERIFIED_CULTURAL_ITEM_REWARD = 0.5
CULTURAL_FLAG_DECAY = 0.8


def _clamp(value: float) -> float:
    return round(min(max(value, MIN_SCORE), MAX_SCORE), 4)


def compute_score(signals: TrustSignals) -> TrustScore:
    """Derive a trust snapshot from signals. Pure and deterministic."""
    points = sum(v.trust_points for v in signals.approved_verifications)
    verification = _clamp(MAX_SCORE * points / MAX_VERIFICATION_POINTS)

    if signals.total_transactions == 0:
        transaction = NEUTRAL_SCORE
    else:
        ratio = signals.successful_transactions / signals.total_transactions
        volume = min(signals.total_transactions, TRANSACTION_VOLUME_CAP) / TRANSACTION_VOLUME_CAP
        transaction = NEUTRAL_SCORE + (ratio * MAX_SCORE - NEUTRAL_SCORE) * volume
    transaction = _clamp(transaction - DISPUTE_PENALTY * signals.disputes_raised)

    community = _clamp(
        NEUTRAL_SCORE
        - REPORT_PENALTY * signals.reports_received
        + HELPFUL_MARK_REWARD * signals.helpful_marks
    )
    cultural = _clamp(
        (NEUTRAL_SCORE + VERIFIED_CULTURAL_ITEM_REWARD * signals.verified_cultural_items)
        * CULTURAL_FLAG_DECAY**signals.upheld_cultural_flags
    )
    overall = _clamp(
        OVERALL_WEIGHTS["verification"] * verification
        + OVERALL_WEIGHTS["transaction"] * transaction
        + OVERALL_WEIGHTS["community"] * community
        + OVERALL_WEIGHTS["cultural"] * cultural
    )

    return TrustScore(
        user_id=signals.user_id,
        verification_score=verification,
        transaction_score=transaction,
        community_score=community,
        cultural_sensitivity_score=cultural,
        overall_score=overall,
        total_transactions=signals.total_transactions,
        successful_transactions=signals.successful_transactions,
        disputes_raised=signals.disputes_raised,
        reports_received=signals.reports_received,
        verified_cultural_items=signals.verified_cultural_items,
    )


def neutral_score(user_id: str) -> TrustScore:
    return TrustScore(
        user_id=user_id,
        verification_score=NEUTRAL_SCORE,
        transaction_score=NEUTRAL_SCORE,
        community_score=NEUTRAL_SCORE,
        cultural_sensitivity_score=NEUTRAL_SCORE,
        overall_score=NEUTRAL_SCORE,
    )


class TrustScoreAggregator:
    """Maintains per-user trust snapshots.

    Every event method writes its counter change first and then calls
    ``recompute``, so the stored snapshot always reflects the counters.
    """

    def __init__(
        self,
        accounts: AccountRepository,
        scores: TrustScoreRepository,
        metrics: MetricsSink,
    ) -> None:
        self._accounts = accounts
        self._scores = scores
        self._metrics = metrics

    def get(self, user_id: str) -> TrustScore:
        """Return the stored snapshot, creating the neutral one on first access."""
        existing = self._scores.find(user_id)
        if existing is not None:
            return existing
        Log.debug("Creating neutral trust score", user_id=user_id)
        return self._scores.insert_if_absent(neutral_score(user_id))

    def recompute(self, user_id: str) -> TrustScore:
        """Read, score and store in one transaction under the account row lock."""
        with get_connection() as conn:
            signals = self._accounts.lock_signals(conn, user_id)
            score = self._scores.upsert(compute_score(signals), conn=conn)
            conn.commit()
        self._metrics.increment(Counter.TRUST_RECOMPUTED)
        Log.info(
            "Trust score recomputed",
            user_id=user_id,
            overall=score.overall_score,
        )
        return score

    def record_transaction(
        self,
        user_id: str,
        amount: float,
        successful: bool,
        disputed: bool = False,
    ) -> TrustScore:
        self._accounts.record_transaction(user_id, amount, successful, disputed)
        return self.recompute(user_id)

    def record_verification(self, user_id: str, verification_type: VerificationType) -> TrustScore:
        self._accounts.record_verification(user_id, verification_type)
        return self.recompute(user_id)

    def record_helpful_mark(self, user_id: str) -> TrustScore:
        self._accounts.increment_counter(user_id, "helpful_marks")
        return self.recompute(user_id)

    def record_report_upheld(self, user_id: str) -> None:
        self._accounts.increment_counter(user_id, "reports_received")

    def record_cultural_flag_upheld(self, user_id: str) -> None:
        self._accounts.increment_counter(user_id, "upheld_cultural_flags")
