from abc import ABC, abstractmethod
from collections.abc import Mapping


class BaseObjectStorage(ABC):
    """Contract for binary object storage. The pipeline only keeps handles."""

    @abstractmethod
    def store(self, content: bytes, metadata: Mapping[str, str]) -> str:
        """Persist bytes and return an opaque URL handle.

        Raises:
            InfrastructureError: if the storage backend is unavailable.
        """

    @abstractmethod
    def fetch(self, handle: str) -> bytes:
        """Read bytes for a handle returned by ``store``.

        Raises:
            NotFoundError: if the handle does not resolve to an object.
            InfrastructureError: if the storage backend is unavailable.
        """
