from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import MagicMock

from trust_safety.intake.models import Submission, SubmissionKind, SubmissionState

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


def make_submission(
    kind: SubmissionKind = SubmissionKind.LISTING,
    submission_id: str = "sub-1",
    submitter_id: str = "seller-1",
    payload: dict[str, Any] | None = None,
    cultural_tags: tuple[str, ...] = (),
    artifact_url: str | None = None,
    state: SubmissionState = SubmissionState.ANALYZING,
) -> Submission:
    return Submission(
        id=submission_id,
        kind=kind,
        submitter_id=submitter_id,
        state=state,
        item_id="item-1",
        artifact_url=artifact_url,
        payload=payload if payload is not None else {"title": "Woven basket", "description": ""},
        cultural_tags=cultural_tags,
        created_at=T0,
    )


def mock_connection(mock_get_conn: MagicMock) -> tuple[MagicMock, MagicMock]:
    """Wire up a mock connection + cursor and return (mock_conn, mock_cursor)."""
    mock_cursor = MagicMock()
    mock_conn = MagicMock()
    mock_conn.cursor.return_value.__enter__ = MagicMock(return_value=mock_cursor)
    mock_conn.cursor.return_value.__exit__ = MagicMock(return_value=False)
    mock_get_conn.return_value.__enter__ = MagicMock(return_value=mock_conn)
    mock_get_conn.return_value.__exit__ = MagicMock(return_value=False)
    return mock_conn, mock_cursor


# connection_scope resolves the pool here, so writes that accept a caller
# connection are patched at this path rather than in the repository module.
POOL_CONNECTION = "trust_safety.database.connection.get_connection"


def mock_cursor_on(mock_conn: MagicMock) -> MagicMock:
    """Attach a mock cursor to a caller-owned mock connection."""
    mock_cursor = MagicMock()
    mock_conn.cursor.return_value.__enter__ = MagicMock(return_value=mock_cursor)
    mock_conn.cursor.return_value.__exit__ = MagicMock(return_value=False)
    return mock_cursor
