"""Synchronous intake checks. Nothing is persisted when any of these raise."""

from collections.abc import Iterable

from trust_safety.config.settings import Settings
from trust_safety.exceptions import SubmissionValidationError
from trust_safety.intake.models import Artifact, PaymentEvent, ReportType

_MAX_CULTURAL_TAGS = 20
_MAX_TAG_LENGTH = 64
_MAX_TITLE_LENGTH = 200
_MAX_DESCRIPTION_LENGTH = 5000


def require_id(value: str | None, field: str) -> str:
    if not value or not value.strip():
        raise SubmissionValidationError(f"'{field}' must be a non-empty string")
    return value.strip()


def validate_artifact(artifact: Artifact, settings: Settings) -> None:
    """Check filename, size bounds and media type.

    Raises:
        SubmissionValidationError: on the first violated constraint.
    """
    if not artifact.filename or not artifact.filename.strip():
        raise SubmissionValidationError("Artifact filename must not be empty")
    if artifact.size == 0:
        raise SubmissionValidationError("Artifact is empty")
    if artifact.size < settings.upload_min_bytes:
        raise SubmissionValidationError(
            f"Artifact is too small: {artifact.size} bytes (min {settings.upload_min_bytes})"
        )
    if artifact.size > settings.upload_max_bytes:
        raise SubmissionValidationError(
            f"Artifact is too large: {artifact.size} bytes (max {settings.upload_max_bytes})"
        )
    allowed = {media_type.lower() for media_type in settings.upload_allowed_media_types}
    if artifact.media_type.lower() not in allowed:
        raise SubmissionValidationError(
            f"Media type '{artifact.media_type}' is not allowed. Choose from: {sorted(allowed)}"
        )


def normalize_cultural_tags(tags: Iterable[str]) -> tuple[str, ...]:
    """Strip, drop blanks and de-duplicate case-insensitively, keeping first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for raw in tags:
        if not isinstance(raw, str):
            raise SubmissionValidationError("Cultural tags must be strings")
        tag = raw.strip()
        if not tag or tag.lower() in seen:
            continue
        if len(tag) > _MAX_TAG_LENGTH:
            raise SubmissionValidationError(
                f"Cultural tag is too long: {len(tag)} characters (max {_MAX_TAG_LENGTH})"
            )
        seen.add(tag.lower())
        result.append(tag)
    if len(result) > _MAX_CULTURAL_TAGS:
        raise SubmissionValidationError(
            f"Too many cultural tags: {len(result)} (max {_MAX_CULTURAL_TAGS})"
        )
    return tuple(result)


def validate_listing_text(title: str, description: str, *, require_title: bool) -> None:
    if require_title and not title.strip():
        raise SubmissionValidationError("Listing title must not be empty")
    if len(title) > _MAX_TITLE_LENGTH:
        raise SubmissionValidationError(
            f"Title is too long: {len(title)} characters (max {_MAX_TITLE_LENGTH})"
        )
    if len(description) > _MAX_DESCRIPTION_LENGTH:
        raise SubmissionValidationError(
            f"Description is too long: {len(description)} characters "
            f"(max {_MAX_DESCRIPTION_LENGTH})"
        )


def validate_payment(payment: PaymentEvent) -> None:
    if payment.amount <= 0:
        raise SubmissionValidationError(f"Payment amount must be positive, got {payment.amount}")
    if len(payment.currency) != 3 or not payment.currency.isalpha():
        raise SubmissionValidationError(
            f"Currency must be a 3-letter code, got '{payment.currency}'"
        )
    if payment.market_price is not None and payment.market_price <= 0:
        raise SubmissionValidationError(
            f"Market price must be positive when given, got {payment.market_price}"
        )


def parse_report_type(value: ReportType | str) -> ReportType:
    try:
        return ReportType(value)
    except ValueError as exc:
        raise SubmissionValidationError(
            f"Unknown report type '{value}'. Choose from: {[t.value for t in ReportType]}"
        ) from exc


def validate_report(
    description: str,
    reported_user_id: str | None,
    reported_item_id: str | None,
) -> None:
    if not description or not description.strip():
        raise SubmissionValidationError("Report description must not be empty")
    if len(description) > _MAX_DESCRIPTION_LENGTH:
        raise SubmissionValidationError(
            f"Report description is too long: {len(description)} characters "
            f"(max {_MAX_DESCRIPTION_LENGTH})"
        )
    if not reported_user_id and not reported_item_id:
        raise SubmissionValidationError("A report must name a user or an item")
