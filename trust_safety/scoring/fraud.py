from datetime import datetime, timedelta, timezone
from typing import ClassVar

from trust_safety.exceptions import ProviderError
from trust_safety.intake.models import PaymentEvent, Submission
from trust_safety.scoring.base import BaseScorer
from trust_safety.scoring.models import (
    HIGH_CONFIDENCE_FRAUD,
    AnalysisResult,
    ProviderKind,
    ScoringContext,
    TransactionSummary,
)


class FraudScorer(BaseScorer):
    """Weighted payment-fraud heuristics, adjusted by the buyer's trust score."""

    kind: ClassVar[ProviderKind] = ProviderKind.FRAUD

    FACTOR_WEIGHTS: ClassVar[dict[str, float]] = {
        "rapid_purchases": 0.3,
        "unusual_amount": 0.2,
        "new_account": 0.15,
        "address_mismatch": 0.2,
        "price_anomaly": 0.15,
    }
    FACTOR_FLAGS: ClassVar[dict[str, str]] = {
        "rapid_purchases": "Multiple purchases within one minute",
        "unusual_amount": "Amount far above the buyer's average",
        "new_account": "Account is less than seven days old",
        "address_mismatch": "Billing and shipping countries differ",
        "price_anomaly": "Price is far below the market price",
    }

    RAPID_PURCHASE_WINDOW: ClassVar[timedelta] = timedelta(seconds=60)
    NEW_ACCOUNT_AGE: ClassVar[timedelta] = timedelta(days=7)
    UNUSUAL_AMOUNT_MULTIPLIER: ClassVar[float] = 5.0
    PRICE_ANOMALY_RATIO: ClassVar[float] = 0.3
    ALERT_THRESHOLD: ClassVar[float] = 0.6

    TRUSTED_OVERALL: ClassVar[float] = 8.0
    TRUSTED_MULTIPLIER: ClassVar[float] = 0.75
    UNTRUSTED_OVERALL: ClassVar[float] = 3.0
    UNTRUSTED_PENALTY: ClassVar[float] = 0.1

    def score(self, submission: Submission, context: ScoringContext) -> AnalysisResult:
        try:
            payment = PaymentEvent.from_payload(submission.payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise ProviderError(
                f"Submission {submission.id} has no usable payment payload"
            ) from exc

        now = context.now or datetime.now(timezone.utc)
        factors = {
            "rapid_purchases": self._rapid_purchases(context.recent_transactions),
            "unusual_amount": self._unusual_amount(payment.amount, context.recent_transactions),
            "new_account": self._new_account(context.account_created_at, now),
            "address_mismatch": self._address_mismatch(payment),
            "price_anomaly": self._price_anomaly(payment.amount, payment.market_price),
        }
        base_score = min(
            sum(self.FACTOR_WEIGHTS[name] for name, hit in factors.items() if hit), 1.0
        )
        score, adjustment = self._apply_trust(base_score, context)
        score = round(score, 4)

        flags = [self.FACTOR_FLAGS[name] for name, hit in factors.items() if hit]
        recommendations: list[str] = []
        if score > self.ALERT_THRESHOLD:
            flags.append("suspicious_payment")
            recommendations.append("Hold payout until the payment is reviewed")
        if score > HIGH_CONFIDENCE_FRAUD:
            recommendations.append("Apply an account security review")

        return AnalysisResult(
            provider=self.kind,
            risk_score=score,
            flags=tuple(flags),
            recommendations=tuple(recommendations),
            metadata={
                "fraud_factors": factors,
                "base_score": round(base_score, 4),
                "trust_adjustment": adjustment,
            },
        )

    def _apply_trust(self, score: float, context: ScoringContext) -> tuple[float, str]:
        trust = context.trust_score
        if trust is None:
            return score, "none"
        if trust.overall_score >= self.TRUSTED_OVERALL:
            return score * self.TRUSTED_MULTIPLIER, "trusted"
        if trust.overall_score < self.UNTRUSTED_OVERALL and score > 0:
            return min(score + self.UNTRUSTED_PENALTY, 1.0), "untrusted"
        return score, "none"

    def _rapid_purchases(self, history: tuple[TransactionSummary, ...]) -> bool:
        if len(history) < 3:
            return False
        recent = sorted(history, key=lambda t: t.created_at, reverse=True)[:3]
        return recent[0].created_at - recent[2].created_at < self.RAPID_PURCHASE_WINDOW

    def _unusual_amount(self, amount: float, history: tuple[TransactionSummary, ...]) -> bool:
        if not history:
            return False
        average = sum(t.amount for t in history) / len(history)
        return amount > average * self.UNUSUAL_AMOUNT_MULTIPLIER

    def _new_account(self, created_at: datetime | None, now: datetime) -> bool:
        if created_at is None:
            return True
        return now - created_at < self.NEW_ACCOUNT_AGE

    @staticmethod
    def _address_mismatch(payment: PaymentEvent) -> bool:
        if not payment.billing_country or not payment.shipping_country:
            return False
        return payment.billing_country.strip().upper() != payment.shipping_country.strip().upper()

    def _price_anomaly(self, amount: float, market_price: float | None) -> bool:
        if not market_price:
            return False
        return amount < market_price * self.PRICE_ANOMALY_RATIO
