from trust_safety.exceptions import ProviderError


class ContentClassifierError(ProviderError):
    """Raised when the content safety backend fails."""


class ContentClassifierNetworkError(ContentClassifierError):
    """Raised when the content safety backend is unreachable or times out."""
