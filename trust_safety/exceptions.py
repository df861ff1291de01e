class TrustSafetyError(Exception):
    """Base exception for all trust & safety pipeline errors."""


class SubmissionValidationError(TrustSafetyError):
    """Raised synchronously at intake when input violates a constraint.

    No submission or moderation item is created when this is raised.
    """


class ProviderError(TrustSafetyError):
    """Raised by a scoring provider that could not produce a result."""


class ProviderTimeoutError(ProviderError):
    """Raised when a scoring provider exceeds its time budget."""


class InfrastructureError(TrustSafetyError):
    """Raised when the store or object storage is unavailable."""


class DeliveryError(TrustSafetyError):
    """Raised when a single notification delivery attempt fails."""


class ConflictError(TrustSafetyError):
    """Raised when a conditional write loses a race or hits the wrong state."""


class InvalidTransitionError(ConflictError):
    """Raised when an entity is not in the state a transition requires."""


class AlreadyAssignedError(ConflictError):
    """Raised when a moderation item was already taken by another reviewer."""


class NotFoundError(TrustSafetyError):
    """Raised when a referenced entity does not exist."""
