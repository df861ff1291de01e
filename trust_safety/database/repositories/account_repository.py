from dataclasses import dataclass
from datetime import datetime
from typing import Any

import psycopg
from psycopg.rows import dict_row

from trust_safety.database.connection import connection_scope, get_connection
from trust_safety.exceptions import InfrastructureError
from trust_safety.scoring.models import TransactionSummary
from trust_safety.trust.models import TrustSignals, VerificationType


@dataclass(frozen=True)
class AccountProfile:
    user_id: str
    created_at: datetime | None
    cultural_background: tuple[str, ...] = ()
    security_flags: tuple[str, ...] = ()
    email: str | None = None


class AccountRepository:
    """Database operations for accounts, user_verifications and transactions."""

    COUNTERS: frozenset[str] = frozenset(
        {
            "disputes_raised",
            "reports_received",
            "helpful_marks",
            "verified_cultural_items",
            "upheld_cultural_flags",
        }
    )

    def find_profile(self, user_id: str) -> AccountProfile | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT user_id, email, cultural_background, security_flags, created_at
                    FROM accounts
                    WHERE user_id = %s
                    """,
                    (user_id,),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return AccountProfile(
            user_id=row["user_id"],
            created_at=row["created_at"],
            cultural_background=tuple(row["cultural_background"] or ()),
            security_flags=tuple(row["security_flags"] or ()),
            email=row["email"],
        )

    def get_email(self, user_id: str) -> str | None:
        """Return the delivery address for a user, or None if unknown."""
        profile = self.find_profile(user_id)
        return profile.email if profile is not None else None

    def recent_transactions(self, user_id: str, limit: int = 10) -> tuple[TransactionSummary, ...]:
        """Most recent transactions first."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT amount, successful, created_at
                    FROM transactions
                    WHERE user_id = %s
                    ORDER BY created_at DESC
                    LIMIT %s
                    """,
                    (user_id, limit),
                )
                rows = cur.fetchall()

        return tuple(
            TransactionSummary(
                amount=float(row["amount"]),
                successful=row["successful"],
                created_at=row["created_at"],
            )
            for row in rows
        )

    def add_security_flag(
        self, user_id: str, flag: str, conn: psycopg.Connection[Any] | None = None
    ) -> None:
        """Add ``flag`` to the account's security flags. Applying it twice is a no-op."""
        with connection_scope(conn) as scoped:
            scoped.execute(
                """
                INSERT INTO accounts (user_id, security_flags)
                VALUES (%s, jsonb_build_array(%s::text))
                ON CONFLICT (user_id) DO UPDATE SET
                    security_flags = CASE
                        WHEN accounts.security_flags ? %s::text THEN accounts.security_flags
                        ELSE accounts.security_flags || jsonb_build_array(%s::text)
                    END,
                    updated_at = NOW()
                """,
                (user_id, flag, flag, flag),
            )

    def lock_signals(self, conn: psycopg.Connection[Any], user_id: str) -> TrustSignals:
        """Read signals while holding the account row lock in ``conn``'s transaction.

        The account row is created first if missing so there is always a row
        to lock; recomputes for one user serialize on it until the caller
        commits. Unknown users read as zero counters.
        """
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                "INSERT INTO accounts (user_id) VALUES (%s) ON CONFLICT (user_id) DO NOTHING",
                (user_id,),
            )
            cur.execute(
                """
                SELECT total_transactions, successful_transactions, disputes_raised,
                       reports_received, helpful_marks, verified_cultural_items,
                       upheld_cultural_flags
                FROM accounts
                WHERE user_id = %s
                FOR UPDATE
                """,
                (user_id,),
            )
            counters = cur.fetchone()
            cur.execute(
                """
                SELECT verification_type
                FROM user_verifications
                WHERE user_id = %s AND status = 'approved'
                """,
                (user_id,),
            )
            verifications = cur.fetchall()

        if counters is None:
            raise InfrastructureError(f"Account row for {user_id} missing after insert")
        return TrustSignals(
            user_id=user_id,
            approved_verifications=frozenset(
                VerificationType(row["verification_type"]) for row in verifications
            ),
            total_transactions=counters["total_transactions"],
            successful_transactions=counters["successful_transactions"],
            disputes_raised=counters["disputes_raised"],
            reports_received=counters["reports_received"],
            helpful_marks=counters["helpful_marks"],
            verified_cultural_items=counters["verified_cultural_items"],
            upheld_cultural_flags=counters["upheld_cultural_flags"],
        )

    def record_transaction(
        self,
        user_id: str,
        amount: float,
        successful: bool,
        disputed: bool = False,
    ) -> None:
        """Append a transaction and bump the denormalized counters atomically."""
        with get_connection() as conn:
            conn.execute(
                """
                INSERT INTO transactions (user_id, amount, successful, disputed)
                VALUES (%s, %s, %s, %s)
                """,
                (user_id, amount, successful, disputed),
            )
            conn.execute(
                """
                INSERT INTO accounts
                    (user_id, total_transactions, successful_transactions, disputes_raised)
                VALUES (%s, 1, %s, %s)
                ON CONFLICT (user_id) DO UPDATE SET
                    total_transactions = accounts.total_transactions + 1,
                    successful_transactions =
                        accounts.successful_transactions + EXCLUDED.successful_transactions,
                    disputes_raised = accounts.disputes_raised + EXCLUDED.disputes_raised,
                    updated_at = NOW()
                """,
                (user_id, 1 if successful else 0, 1 if disputed else 0),
            )
            conn.commit()

    def record_verification(self, user_id: str, verification_type: VerificationType) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                INSERT INTO user_verifications (user_id, verification_type, status, approved_at)
                VALUES (%s, %s, 'approved', NOW())
                ON CONFLICT (user_id, verification_type) DO UPDATE SET
                    status = 'approved', approved_at = NOW()
                """,
                (user_id, verification_type.value),
            )
            conn.execute(
                "INSERT INTO accounts (user_id) VALUES (%s) ON CONFLICT (user_id) DO NOTHING",
                (user_id,),
            )
            conn.commit()

    def increment_counter(self, user_id: str, counter: str, amount: int = 1) -> None:
        """Increment one of the whitelisted denormalized counters."""
        if counter not in self.COUNTERS:
            raise ValueError(
                f"Unknown account counter '{counter}'. Choose from: {sorted(self.COUNTERS)}"
            )
        params: dict[str, Any] = {"user_id": user_id, "amount": amount}
        with get_connection() as conn:
            conn.execute(
                f"""
                INSERT INTO accounts (user_id, {counter})
                VALUES (%(user_id)s, %(amount)s)
                ON CONFLICT (user_id) DO UPDATE SET
                    {counter} = accounts.{counter} + %(amount)s,
                    updated_at = NOW()
                """,
                params,
            )
            conn.commit()
