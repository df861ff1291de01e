import uuid
from collections.abc import Mapping
from pathlib import Path

from trust_safety.exceptions import InfrastructureError, NotFoundError
from trust_safety.storage.base import BaseObjectStorage


class LocalObjectStorage(BaseObjectStorage):
    """Stores uploads on a local disk as ``{root}/{owner}/{uuid}{suffix}``.

    Handles look like ``local://{owner}/{uuid}{suffix}``.
    """

    SCHEME = "local://"

    def __init__(self, root: Path) -> None:
        self._root = root

    def store(self, content: bytes, metadata: Mapping[str, str]) -> str:
        owner = metadata.get("owner_id") or "anonymous"
        suffix = Path(metadata.get("filename", "")).suffix.lower()
        relative = Path(_safe_segment(owner)) / f"{uuid.uuid4()}{suffix}"
        path = self._root / relative
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as exc:
            raise InfrastructureError(f"Object storage write failed: {exc}") from exc
        return f"{self.SCHEME}{relative.as_posix()}"

    def fetch(self, handle: str) -> bytes:
        path = self._resolve(handle)
        if not path.exists():
            raise NotFoundError(f"Object not found: {handle}")
        try:
            return path.read_bytes()
        except OSError as exc:
            raise InfrastructureError(f"Object storage read failed: {exc}") from exc

    def _resolve(self, handle: str) -> Path:
        if not handle.startswith(self.SCHEME):
            raise NotFoundError(f"Unsupported storage handle '{handle}'")
        relative = Path(handle[len(self.SCHEME):])
        if relative.is_absolute() or ".." in relative.parts:
            raise NotFoundError(f"Invalid storage handle '{handle}'")
        return self._root / relative


def _safe_segment(value: str) -> str:
    cleaned = "".join(ch for ch in value if ch.isalnum() or ch in "-_")
    return cleaned or "anonymous"
