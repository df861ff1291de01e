from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class SubmissionKind(str, Enum):
    IMAGE_UPLOAD = "image_upload"
    LISTING = "listing"
    PAYMENT = "payment"


class SubmissionState(str, Enum):
    """Submission lifecycle. SubmissionRepository moves it forward only, by CAS on ``state``."""

    INTAKE = "intake"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"


class Disposition(str, Enum):
    SAFE = "safe"
    FLAGGED = "flagged"


class ReportType(str, Enum):
    FRAUD = "fraud"
    INAPPROPRIATE_CONTENT = "inappropriate_content"
    CULTURAL_APPROPRIATION = "cultural_appropriation"
    HARASSMENT = "harassment"
    FAKE_LISTING = "fake_listing"
    SPAM = "spam"


@dataclass(frozen=True)
class Artifact:
    """Raw upload as received from the caller. Never persisted as bytes."""

    filename: str
    content: bytes
    media_type: str

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class PaymentEvent:
    """Structured payment payload checked for fraud."""

    amount: float
    currency: str
    item_id: str | None = None
    billing_country: str | None = None
    shipping_country: str | None = None
    market_price: float | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "amount": self.amount,
            "currency": self.currency,
            "item_id": self.item_id,
            "billing_country": self.billing_country,
            "shipping_country": self.shipping_country,
            "market_price": self.market_price,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "PaymentEvent":
        market_price = payload.get("market_price")
        return cls(
            amount=float(payload["amount"]),
            currency=str(payload["currency"]),
            item_id=payload.get("item_id"),
            billing_country=payload.get("billing_country"),
            shipping_country=payload.get("shipping_country"),
            market_price=float(market_price) if market_price is not None else None,
        )


@dataclass(frozen=True)
class Submission:
    """One artifact under trust & safety review (row of the submissions table)."""

    id: str
    kind: SubmissionKind
    submitter_id: str
    state: SubmissionState
    item_id: str | None = None
    artifact_url: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    cultural_tags: tuple[str, ...] = ()
    disposition: Disposition | None = None
    summary: dict[str, Any] | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def title(self) -> str:
        return str(self.payload.get("title") or "")

    @property
    def description(self) -> str:
        return str(self.payload.get("description") or "")
