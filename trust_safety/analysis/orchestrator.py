import time
from collections.abc import Callable, Mapping
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime
from typing import Any

import psycopg

from trust_safety.analysis.models import (
    AnalysisOutcome,
    aggregate_disposition,
    applicable_providers,
)
from trust_safety.config.settings import Settings
from trust_safety.database.connection import get_connection
from trust_safety.database.repositories.account_repository import AccountRepository
from trust_safety.database.repositories.submission_repository import SubmissionRepository
from trust_safety.exceptions import (
    ConflictError,
    InfrastructureError,
    ProviderError,
    ProviderTimeoutError,
)
from trust_safety.intake.models import Disposition, Submission, SubmissionKind
from trust_safety.logging.logger import Log
from trust_safety.metrics.sink import Counter, Gauge, MetricsSink
from trust_safety.moderation.models import EnrollmentResult, EntityKind, Priority
from trust_safety.moderation.queue import ModerationQueue
from trust_safety.notifications.models import Channel, NotificationPriority
from trust_safety.notifications.queue import NotificationQueue, utc_now
from trust_safety.scoring.base import BaseScorer
from trust_safety.scoring.models import (
    HIGH_CONFIDENCE_FRAUD,
    AnalysisResult,
    ProviderKind,
    ScoringContext,
    TransactionSummary,
)
from trust_safety.trust.aggregator import TrustScoreAggregator

SECURITY_FLAG = "fraud_review"
RECENT_TRANSACTION_LIMIT = 10


class AnalysisOrchestrator:
    """Drives one submission through ``analyzing -> completed | failed``.

    Providers run concurrently, each under its own time budget. A provider
    that errors or times out is recorded as skipped and aggregation continues
    with the remaining results. Only infrastructure failures (store or object
    storage unavailable) and unexpected errors fail the submission.
    """

    def __init__(
        self,
        submissions: SubmissionRepository,
        scorers: Mapping[ProviderKind, BaseScorer],
        accounts: AccountRepository,
        trust: TrustScoreAggregator,
        moderation: ModerationQueue,
        notifications: NotificationQueue,
        metrics: MetricsSink,
        settings: Settings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._submissions = submissions
        self._scorers = scorers
        self._accounts = accounts
        self._trust = trust
        self._moderation = moderation
        self._notifications = notifications
        self._metrics = metrics
        self._settings = settings
        self._clock = clock

    def claim_next(self) -> Submission | None:
        """Claim the oldest submission waiting in ``intake``."""
        with get_connection() as conn:
            return self._submissions.claim_next(conn)

    def analyze(self, submission_id: str) -> AnalysisOutcome | None:
        """Claim a specific submission and process it.

        Raises:
            InvalidTransitionError: if the submission already left ``intake``.
        """
        submission = self._submissions.start_analysis(submission_id)
        return self.process(submission)

    def process(self, submission: Submission) -> AnalysisOutcome | None:
        """Analyze a claimed submission. Returns None if it ended up ``failed``."""
        Log.info("Analyzing submission", submission_id=submission.id, kind=submission.kind.value)
        started = time.monotonic()
        try:
            outcome = self._run(submission)
        except ConflictError as exc:
            Log.warning(
                "Submission changed state during analysis",
                submission_id=submission.id,
                error=exc,
            )
            return None
        except Exception as exc:
            self._fail(submission, exc)
            return None
        finally:
            self._metrics.gauge(Gauge.ANALYSIS_DURATION_SECONDS, time.monotonic() - started)

        self._metrics.increment(Counter.SUBMISSIONS_COMPLETED, kind=submission.kind.value)
        Log.info(
            "Submission completed",
            submission_id=submission.id,
            disposition=outcome.disposition.value,
            max_risk=outcome.max_risk_score,
            skipped=",".join(kind.value for kind in outcome.skipped) or "-",
        )
        return outcome

    def _run(self, submission: Submission) -> AnalysisOutcome:
        context = self._build_context(submission)
        results, skipped = self._score(submission, context)
        disposition = aggregate_disposition(results)
        if not results:
            Log.warning("No provider produced a result", submission_id=submission.id)

        enrollment: EnrollmentResult | None = None
        security_flagged = False
        if disposition == Disposition.FLAGGED:
            fraud = next((r for r in results if r.provider == ProviderKind.FRAUD), None)
            security_fraud = (
                fraud if fraud is not None and fraud.risk_score > HIGH_CONFIDENCE_FRAUD else None
            )
            # a security flag never commits without its moderation enrollment
            with get_connection() as conn:
                enrollment = self._enroll(submission, results, conn)
                if security_fraud is not None:
                    self._apply_security_flag(submission, security_fraud, conn)
                self._notify_submitter(submission, conn)
                conn.commit()
            self._metrics.increment(Counter.SUBMISSIONS_FLAGGED, kind=submission.kind.value)
            if security_fraud is not None:
                security_flagged = True
                self._metrics.increment(Counter.SECURITY_FLAGS_APPLIED)
                Log.warning(
                    "Security flag applied",
                    user_id=submission.submitter_id,
                    submission_id=submission.id,
                    fraud_score=security_fraud.risk_score,
                )

        outcome = AnalysisOutcome(
            submission_id=submission.id,
            disposition=disposition,
            results=results,
            skipped=skipped,
            enrollment=enrollment,
            security_flagged=security_flagged,
        )
        self._submissions.complete(submission.id, disposition, results, outcome.to_summary())
        return outcome

    def _build_context(self, submission: Submission) -> ScoringContext:
        trust_score = self._trust.get(submission.submitter_id)
        profile = self._accounts.find_profile(submission.submitter_id)
        recent: tuple[TransactionSummary, ...] = ()
        if submission.kind == SubmissionKind.PAYMENT:
            recent = self._accounts.recent_transactions(
                submission.submitter_id, RECENT_TRANSACTION_LIMIT
            )
        return ScoringContext(
            submitter_id=submission.submitter_id,
            trust_score=trust_score,
            declared_cultural_tags=submission.cultural_tags,
            cultural_background=profile.cultural_background if profile else (),
            account_created_at=profile.created_at if profile else None,
            recent_transactions=recent,
            now=self._clock(),
        )

    def _score(
        self, submission: Submission, context: ScoringContext
    ) -> tuple[list[AnalysisResult], dict[ProviderKind, str]]:
        """Run applicable providers in parallel on a pool sized for this submission.

        Every provider gets its own thread, so its time budget starts when its
        call does. A call still running at the deadline keeps only its own
        thread; the next submission starts on fresh ones.

        Raises:
            InfrastructureError: if any provider hit an unavailable store.
        """
        skipped: dict[ProviderKind, str] = {}
        runnable: dict[ProviderKind, BaseScorer] = {}
        for kind in applicable_providers(submission):
            scorer = self._scorers.get(kind)
            if scorer is None:
                skipped[kind] = "no scorer registered"
                continue
            runnable[kind] = scorer
        if not runnable:
            return [], skipped

        timeout = self._settings.provider_timeout_seconds
        executor = ThreadPoolExecutor(max_workers=len(runnable), thread_name_prefix="provider")
        try:
            futures: dict[ProviderKind, Future[AnalysisResult]] = {
                kind: executor.submit(scorer.score, submission, context)
                for kind, scorer in runnable.items()
            }
            wait(futures.values(), timeout=timeout)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        results: list[AnalysisResult] = []
        for kind, future in futures.items():
            if not future.done():
                error = ProviderTimeoutError(f"{kind.value} provider timed out after {timeout}s")
                self._skip(submission, kind, error, skipped, Counter.PROVIDER_TIMED_OUT)
                continue
            exc = future.exception()
            if isinstance(exc, InfrastructureError):
                raise exc
            if exc is not None:
                self._skip(submission, kind, exc, skipped, Counter.PROVIDER_FAILED)
                continue
            results.append(future.result())
            self._metrics.increment(Counter.PROVIDER_SUCCEEDED, provider=kind.value)
        return results, skipped

    def _skip(
        self,
        submission: Submission,
        kind: ProviderKind,
        exc: BaseException,
        skipped: dict[ProviderKind, str],
        counter: Counter,
    ) -> None:
        label = "" if isinstance(exc, ProviderError) else f"{type(exc).__name__}: "
        skipped[kind] = f"{label}{exc}"
        self._metrics.increment(counter, provider=kind.value)
        Log.warning(
            "Provider skipped",
            submission_id=submission.id,
            provider=kind.value,
            error=skipped[kind],
        )

    def _enroll(
        self,
        submission: Submission,
        results: list[AnalysisResult],
        conn: psycopg.Connection[Any],
    ) -> EnrollmentResult:
        max_risk = max(result.risk_score for result in results)
        cultural = next((r for r in results if r.provider == ProviderKind.CULTURAL), None)
        metadata: dict[str, Any] = {
            "source": "analysis",
            "submission_id": submission.id,
            "submission_kind": submission.kind.value,
            "submitter_id": submission.submitter_id,
            "item_id": submission.item_id,
            "max_risk_score": max_risk,
            "scores": {result.provider.value: result.risk_score for result in results},
            "flags": [flag for result in results for flag in result.flags],
            "cultural_flagged": bool(cultural and cultural.exceeds_threshold),
        }
        return self._moderation.enroll(
            EntityKind.SUBMISSION,
            submission.id,
            Priority.from_risk(max_risk),
            metadata,
            conn=conn,
        )

    def _apply_security_flag(
        self,
        submission: Submission,
        fraud: AnalysisResult,
        conn: psycopg.Connection[Any],
    ) -> None:
        self._accounts.add_security_flag(submission.submitter_id, SECURITY_FLAG, conn=conn)
        self._notifications.enqueue(
            recipient_id=self._settings.security_team_recipient,
            channel=Channel.EMAIL,
            subject=f"High-confidence fraud on account {submission.submitter_id}",
            body=(
                f"Submission {submission.id} scored {fraud.risk_score:.2f} for payment fraud. "
                f"The account has been flagged for a security review.\n"
                + "\n".join(f"- {flag}" for flag in fraud.flags)
            ),
            data={
                "submission_id": submission.id,
                "user_id": submission.submitter_id,
                "fraud_score": fraud.risk_score,
            },
            priority=NotificationPriority.HIGH,
            conn=conn,
        )

    def _notify_submitter(self, submission: Submission, conn: psycopg.Connection[Any]) -> None:
        self._notifications.enqueue(
            recipient_id=submission.submitter_id,
            channel=Channel.PUSH,
            subject="Your submission is under review",
            body="Our team is reviewing your submission. We will let you know the outcome.",
            data={"submission_id": submission.id, "item_id": submission.item_id},
            conn=conn,
        )

    def _fail(self, submission: Submission, exc: Exception) -> None:
        if isinstance(exc, InfrastructureError):
            Log.error("Analysis failed", submission_id=submission.id, error=exc)
        else:
            Log.exception("Unexpected error during analysis", submission_id=submission.id)
        try:
            self._submissions.mark_failed(submission.id, f"{type(exc).__name__}: {exc}")
        except ConflictError as conflict:
            Log.warning(
                "Could not mark submission failed",
                submission_id=submission.id,
                error=conflict,
            )
            return
        except InfrastructureError as store_exc:
            Log.error(
                "Could not record failure; submission left analyzing",
                submission_id=submission.id,
                error=store_exc,
            )
            return
        self._metrics.increment(Counter.SUBMISSIONS_FAILED, kind=submission.kind.value)
