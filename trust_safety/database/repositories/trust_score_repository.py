from typing import Any

import psycopg
from psycopg.rows import dict_row

from trust_safety.database.connection import connection_scope, get_connection
from trust_safety.exceptions import InfrastructureError
from trust_safety.trust.models import TrustScore

_SCORE_COLUMNS = """
    user_id, verification_score, transaction_score, community_score,
    cultural_sensitivity_score, overall_score, total_transactions,
    successful_transactions, disputes_raised, reports_received,
    verified_cultural_items, updated_at
"""


class TrustScoreRepository:
    """Database operations for the trust_scores table."""

    def find(self, user_id: str) -> TrustScore | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_SCORE_COLUMNS} FROM trust_scores WHERE user_id = %s",
                    (user_id,),
                )
                row = cur.fetchone()
        return _to_score(row) if row is not None else None

    def insert_if_absent(self, score: TrustScore) -> TrustScore:
        """Store ``score`` unless a row already exists; return the stored row."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO trust_scores
                        (user_id, verification_score, transaction_score, community_score,
                         cultural_sensitivity_score, overall_score)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    ON CONFLICT (user_id) DO NOTHING
                    RETURNING {_SCORE_COLUMNS}
                    """,
                    (
                        score.user_id,
                        score.verification_score,
                        score.transaction_score,
                        score.community_score,
                        score.cultural_sensitivity_score,
                        score.overall_score,
                    ),
                )
                row = cur.fetchone()
                if row is None:
                    cur.execute(
                        f"SELECT {_SCORE_COLUMNS} FROM trust_scores WHERE user_id = %s",
                        (score.user_id,),
                    )
                    row = cur.fetchone()
            conn.commit()

        if row is None:
            raise InfrastructureError(f"Trust score for {score.user_id} neither inserted nor found")
        return _to_score(row)

    def upsert(
        self, score: TrustScore, conn: psycopg.Connection[Any] | None = None
    ) -> TrustScore:
        """Overwrite the stored snapshot for ``score.user_id``."""
        with connection_scope(conn) as scoped:
            with scoped.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO trust_scores
                        (user_id, verification_score, transaction_score, community_score,
                         cultural_sensitivity_score, overall_score, total_transactions,
                         successful_transactions, disputes_raised, reports_received,
                         verified_cultural_items, updated_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, NOW())
                    ON CONFLICT (user_id) DO UPDATE SET
                        verification_score = EXCLUDED.verification_score,
                        transaction_score = EXCLUDED.transaction_score,
                        community_score = EXCLUDED.community_score,
                        cultural_sensitivity_score = EXCLUDED.cultural_sensitivity_score,
                        overall_score = EXCLUDED.overall_score,
                        total_transactions = EXCLUDED.total_transactions,
                        successful_transactions = EXCLUDED.successful_transactions,
                        disputes_raised = EXCLUDED.disputes_raised,
                        reports_received = EXCLUDED.reports_received,
                        verified_cultural_items = EXCLUDED.verified_cultural_items,
                        updated_at = NOW()
                    RETURNING {_SCORE_COLUMNS}
                    """,
                    (
                        score.user_id,
                        score.verification_score,
                        score.transaction_score,
                        score.community_score,
                        score.cultural_sensitivity_score,
                        score.overall_score,
                        score.total_transactions,
                        score.successful_transactions,
                        score.disputes_raised,
                        score.reports_received,
                        score.verified_cultural_items,
                    ),
                )
                row = cur.fetchone()

        if row is None:
            raise InfrastructureError(f"Trust score upsert for {score.user_id} returned no row")
        return _to_score(row)


def _to_score(row: dict[str, Any]) -> TrustScore:
    return TrustScore(
        user_id=row["user_id"],
        verification_score=float(row["verification_score"]),
        transaction_score=float(row["transaction_score"]),
        community_score=float(row["community_score"]),
        cultural_sensitivity_score=float(row["cultural_sensitivity_score"]),
        overall_score=float(row["overall_score"]),
        total_transactions=row["total_transactions"],
        successful_transactions=row["successful_transactions"],
        disputes_raised=row["disputes_raised"],
        reports_received=row["reports_received"],
        verified_cultural_items=row["verified_cultural_items"],
        updated_at=row["updated_at"],
    )
