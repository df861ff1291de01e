import uuid
from collections.abc import Sequence
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from trust_safety.database.connection import get_connection
from trust_safety.exceptions import InfrastructureError, InvalidTransitionError, NotFoundError
from trust_safety.intake.models import Disposition, Submission, SubmissionKind, SubmissionState
from trust_safety.scoring.models import AnalysisResult, ProviderKind

_SUBMISSION_COLUMNS = """
    id, kind, submitter_id, item_id, artifact_url, payload, cultural_tags,
    state, disposition, summary, error_message, created_at, started_at, finished_at
"""


class SubmissionRepository:
    """Database operations for the submissions and analysis_results tables.

    Every state change is a compare-and-swap on the ``state`` column, so two
    workers can never both move the same submission out of a state.
    """

    def create(
        self,
        *,
        kind: SubmissionKind,
        submitter_id: str,
        payload: dict[str, Any],
        cultural_tags: Sequence[str] = (),
        item_id: str | None = None,
        artifact_url: str | None = None,
    ) -> Submission:
        """Insert a new submission in state ``intake``."""
        submission_id = str(uuid.uuid4())
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO submissions
                        (id, kind, submitter_id, item_id, artifact_url, payload,
                         cultural_tags, state)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, 'intake')
                    RETURNING {_SUBMISSION_COLUMNS}
                    """,
                    (
                        submission_id,
                        kind.value,
                        submitter_id,
                        item_id,
                        artifact_url,
                        Jsonb(payload),
                        Jsonb(list(cultural_tags)),
                    ),
                )
                row = cur.fetchone()
            conn.commit()

        if row is None:
            raise InfrastructureError("Submission insert returned no row")
        return _to_submission(row)

    def find_by_id(self, submission_id: str) -> Submission:
        """Find a submission by ID.

        Raises:
            NotFoundError: if no submission with this ID exists.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_SUBMISSION_COLUMNS} FROM submissions WHERE id = %s",
                    (submission_id,),
                )
                row = cur.fetchone()

        if row is None:
            raise NotFoundError(f"Submission {submission_id} not found")
        return _to_submission(row)

    def claim_next(self, conn: psycopg.Connection[Any]) -> Submission | None:
        """Claim the oldest submission in ``intake`` and move it to ``analyzing``.

        Uses SELECT FOR UPDATE SKIP LOCKED so concurrent workers claim
        different rows; the UPDATE re-checks the state as a compare-and-swap.
        """
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                """
                SELECT id
                FROM submissions
                WHERE state = 'intake'
                ORDER BY created_at
                LIMIT 1
                FOR UPDATE SKIP LOCKED
                """
            )
            row = cur.fetchone()
            if row is None:
                conn.rollback()
                return None

            cur.execute(
                f"""
                UPDATE submissions
                SET state = 'analyzing', started_at = NOW()
                WHERE id = %s AND state = 'intake'
                RETURNING {_SUBMISSION_COLUMNS}
                """,
                (row["id"],),
            )
            claimed = cur.fetchone()
        conn.commit()

        if claimed is None:
            return None
        return _to_submission(claimed)

    def start_analysis(self, submission_id: str) -> Submission:
        """Move one specific submission ``intake`` -> ``analyzing`` (compare-and-swap).

        Raises:
            InvalidTransitionError: if the submission is no longer in ``intake``.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    UPDATE submissions
                    SET state = 'analyzing', started_at = NOW()
                    WHERE id = %s AND state = 'intake'
                    RETURNING {_SUBMISSION_COLUMNS}
                    """,
                    (submission_id,),
                )
                row = cur.fetchone()
            conn.commit()

        if row is None:
            raise InvalidTransitionError(f"Submission {submission_id} is not in intake")
        return _to_submission(row)

    def complete(
        self,
        submission_id: str,
        disposition: Disposition,
        results: Sequence[AnalysisResult],
        summary: dict[str, Any],
    ) -> None:
        """Attach results and move ``analyzing`` -> ``completed`` in one transaction.

        Raises:
            InvalidTransitionError: if the submission is not ``analyzing``;
                nothing is written in that case.
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE submissions
                    SET state = 'completed', disposition = %s, summary = %s,
                        finished_at = NOW()
                    WHERE id = %s AND state = 'analyzing'
                    """,
                    (disposition.value, Jsonb(summary), submission_id),
                )
                if cur.rowcount == 0:
                    conn.rollback()
                    raise InvalidTransitionError(
                        f"Submission {submission_id} is not analyzing; results discarded"
                    )
                for result in results:
                    cur.execute(
                        """
                        INSERT INTO analysis_results
                            (submission_id, provider, risk_score, flags,
                             recommendations, metadata)
                        VALUES (%s, %s, %s, %s, %s, %s)
                        """,
                        (
                            submission_id,
                            result.provider.value,
                            result.risk_score,
                            Jsonb(list(result.flags)),
                            Jsonb(list(result.recommendations)),
                            Jsonb(result.metadata),
                        ),
                    )
            conn.commit()

    def mark_failed(self, submission_id: str, error: str) -> None:
        """Move ``analyzing`` -> ``failed`` and record the error.

        Raises:
            InvalidTransitionError: if the submission is not ``analyzing``.
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE submissions
                    SET state = 'failed', error_message = %s, finished_at = NOW()
                    WHERE id = %s AND state = 'analyzing'
                    """,
                    (error, submission_id),
                )
                updated = cur.rowcount
            conn.commit()

        if updated == 0:
            raise InvalidTransitionError(f"Submission {submission_id} is not analyzing")

    def list_results(self, submission_id: str) -> list[AnalysisResult]:
        """Return the analysis results attached to a submission."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT provider, risk_score, flags, recommendations, metadata
                    FROM analysis_results
                    WHERE submission_id = %s
                    ORDER BY id
                    """,
                    (submission_id,),
                )
                rows = cur.fetchall()

        return [
            AnalysisResult(
                provider=ProviderKind(row["provider"]),
                risk_score=float(row["risk_score"]),
                flags=tuple(row["flags"] or ()),
                recommendations=tuple(row["recommendations"] or ()),
                metadata=dict(row["metadata"] or {}),
            )
            for row in rows
        ]


def _to_submission(row: dict[str, Any]) -> Submission:
    return Submission(
        id=str(row["id"]),
        kind=SubmissionKind(row["kind"]),
        submitter_id=row["submitter_id"],
        state=SubmissionState(row["state"]),
        item_id=row["item_id"],
        artifact_url=row["artifact_url"],
        payload=dict(row["payload"] or {}),
        cultural_tags=tuple(row["cultural_tags"] or ()),
        disposition=Disposition(row["disposition"]) if row["disposition"] else None,
        summary=row["summary"],
        error_message=row["error_message"],
        created_at=row["created_at"],
        started_at=row["started_at"],
        finished_at=row["finished_at"],
    )
