from collections.abc import Iterable, Sequence
from typing import Any

from trust_safety.config.settings import Settings
from trust_safety.database.repositories.submission_repository import SubmissionRepository
from trust_safety.exceptions import SubmissionValidationError
from trust_safety.intake import validator
from trust_safety.intake.models import Artifact, PaymentEvent, ReportType, SubmissionKind
from trust_safety.logging.logger import Log
from trust_safety.metrics.sink import Counter, MetricsSink
from trust_safety.moderation.models import EnrollmentResult, EntityKind, Priority
from trust_safety.moderation.queue import ModerationQueue
from trust_safety.storage.base import BaseObjectStorage

REPORT_PRIORITIES: dict[ReportType, Priority] = {
    ReportType.FRAUD: Priority.HIGH,
    ReportType.CULTURAL_APPROPRIATION: Priority.HIGH,
    ReportType.HARASSMENT: Priority.HIGH,
    ReportType.INAPPROPRIATE_CONTENT: Priority.MEDIUM,
    ReportType.FAKE_LISTING: Priority.MEDIUM,
    ReportType.SPAM: Priority.LOW,
}


class TrustSafetyIntake:
    """Synchronous entry points into the pipeline.

    Each ``submit_*`` call validates, persists a submission in ``intake`` and
    returns its id without waiting for analysis. User reports skip scoring and
    go straight to the moderation queue.
    """

    def __init__(
        self,
        submissions: SubmissionRepository,
        moderation: ModerationQueue,
        storage: BaseObjectStorage,
        metrics: MetricsSink,
        settings: Settings,
    ) -> None:
        self._submissions = submissions
        self._moderation = moderation
        self._storage = storage
        self._metrics = metrics
        self._settings = settings

    def submit_upload(
        self,
        submitter_id: str,
        artifact: Artifact,
        declared_cultural_tags: Iterable[str] = (),
        item_id: str | None = None,
        title: str = "",
        description: str = "",
    ) -> str:
        """Validate an image upload, store its bytes and queue it for analysis.

        Raises:
            SubmissionValidationError: if the artifact or its metadata is invalid.
            InfrastructureError: if object storage or the database is unavailable.
        """
        try:
            submitter_id = validator.require_id(submitter_id, "submitter_id")
            validator.validate_artifact(artifact, self._settings)
            validator.validate_listing_text(title, description, require_title=False)
            tags = validator.normalize_cultural_tags(declared_cultural_tags)
        except SubmissionValidationError as exc:
            self._reject(SubmissionKind.IMAGE_UPLOAD, exc)
            raise

        handle = self._storage.store(
            artifact.content,
            {
                "owner_id": submitter_id,
                "filename": artifact.filename,
                "media_type": artifact.media_type,
            },
        )
        return self._create(
            SubmissionKind.IMAGE_UPLOAD,
            submitter_id,
            payload={
                "filename": artifact.filename,
                "media_type": artifact.media_type.lower(),
                "size": artifact.size,
                "title": title,
                "description": description,
            },
            cultural_tags=tags,
            item_id=item_id,
            artifact_url=handle,
        )

    def submit_listing(
        self,
        submitter_id: str,
        item_id: str,
        title: str,
        description: str = "",
        declared_cultural_tags: Iterable[str] = (),
    ) -> str:
        """Queue a text-only listing for content and cultural analysis."""
        try:
            submitter_id = validator.require_id(submitter_id, "submitter_id")
            item_id = validator.require_id(item_id, "item_id")
            validator.validate_listing_text(title, description, require_title=True)
            tags = validator.normalize_cultural_tags(declared_cultural_tags)
        except SubmissionValidationError as exc:
            self._reject(SubmissionKind.LISTING, exc)
            raise

        return self._create(
            SubmissionKind.LISTING,
            submitter_id,
            payload={"title": title.strip(), "description": description},
            cultural_tags=tags,
            item_id=item_id,
        )

    def submit_payment_for_fraud_check(self, submitter_id: str, payment: PaymentEvent) -> str:
        """Queue a payment event for fraud scoring."""
        try:
            submitter_id = validator.require_id(submitter_id, "submitter_id")
            validator.validate_payment(payment)
        except SubmissionValidationError as exc:
            self._reject(SubmissionKind.PAYMENT, exc)
            raise

        normalized = PaymentEvent(
            amount=payment.amount,
            currency=payment.currency.upper(),
            item_id=payment.item_id,
            billing_country=payment.billing_country,
            shipping_country=payment.shipping_country,
            market_price=payment.market_price,
        )
        return self._create(
            SubmissionKind.PAYMENT,
            submitter_id,
            payload=normalized.to_payload(),
            item_id=payment.item_id,
        )

    def submit_user_report(
        self,
        reporter_id: str,
        report_type: ReportType | str,
        description: str,
        reported_user_id: str | None = None,
        reported_item_id: str | None = None,
        evidence_urls: Sequence[str] = (),
    ) -> EnrollmentResult:
        """Enroll a user report directly with its fixed priority.

        The reported listing is the entity when an item is named, otherwise
        the reported user.
        """
        try:
            reporter_id = validator.require_id(reporter_id, "reporter_id")
            parsed_type = validator.parse_report_type(report_type)
            validator.validate_report(description, reported_user_id, reported_item_id)
        except SubmissionValidationError as exc:
            self._metrics.increment(Counter.SUBMISSIONS_REJECTED, kind="user_report")
            Log.warning("User report rejected", reporter_id=reporter_id, error=exc)
            raise

        if reported_item_id:
            entity_kind, entity_id = EntityKind.LISTING, reported_item_id
        else:
            entity_kind, entity_id = EntityKind.USER, str(reported_user_id)

        metadata: dict[str, Any] = {
            "source": "user_report",
            "report_type": parsed_type.value,
            "reporter_id": reporter_id,
            "description": description.strip(),
            "evidence_urls": list(evidence_urls),
        }
        if reported_user_id:
            metadata["reported_user_id"] = reported_user_id
        if reported_item_id:
            metadata["reported_item_id"] = reported_item_id
        if parsed_type == ReportType.CULTURAL_APPROPRIATION:
            metadata["cultural_flagged"] = True

        result = self._moderation.enroll(
            entity_kind,
            entity_id,
            REPORT_PRIORITIES[parsed_type],
            metadata,
        )
        Log.info(
            "User report enrolled",
            item_id=result.item_id,
            report_type=parsed_type.value,
            reporter_id=reporter_id,
        )
        return result

    def _create(
        self,
        kind: SubmissionKind,
        submitter_id: str,
        payload: dict[str, Any],
        cultural_tags: Sequence[str] = (),
        item_id: str | None = None,
        artifact_url: str | None = None,
    ) -> str:
        submission = self._submissions.create(
            kind=kind,
            submitter_id=submitter_id,
            payload=payload,
            cultural_tags=cultural_tags,
            item_id=item_id,
            artifact_url=artifact_url,
        )
        self._metrics.increment(Counter.SUBMISSIONS_ACCEPTED, kind=kind.value)
        Log.info(
            "Submission accepted",
            submission_id=submission.id,
            kind=kind.value,
            submitter_id=submitter_id,
        )
        return submission.id

    def _reject(self, kind: SubmissionKind, exc: SubmissionValidationError) -> None:
        self._metrics.increment(Counter.SUBMISSIONS_REJECTED, kind=kind.value)
        Log.warning("Submission rejected", kind=kind.value, error=exc)
