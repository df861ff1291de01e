from unittest.mock import MagicMock, patch

import pytest

from tests.helpers import POOL_CONNECTION, T0, mock_connection, mock_cursor_on
from trust_safety.database.repositories.account_repository import AccountRepository
from trust_safety.trust.models import VerificationType

_MODULE = "trust_safety.database.repositories.account_repository"


class TestFindProfile:
    @patch(f"{_MODULE}.get_connection")
    def test_maps_row(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = {
            "user_id": "seller-1",
            "email": "seller@example.com",
            "cultural_background": ["Yoruba"],
            "security_flags": None,
            "created_at": T0,
        }

        profile = AccountRepository().find_profile("seller-1")

        assert profile is not None
        assert profile.cultural_background == ("Yoruba",)
        assert profile.security_flags == ()

    @patch(f"{_MODULE}.get_connection")
    def test_unknown_user_has_no_email(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = None

        assert AccountRepository().get_email("ghost") is None


class TestLockSignals:
    def test_creates_row_then_locks_it(self) -> None:
        conn = MagicMock()
        mock_cursor = mock_cursor_on(conn)
        mock_cursor.fetchone.return_value = {
            "total_transactions": 0,
            "successful_transactions": 0,
            "disputes_raised": 0,
            "reports_received": 0,
            "helpful_marks": 0,
            "verified_cultural_items": 0,
            "upheld_cultural_flags": 0,
        }
        mock_cursor.fetchall.return_value = [{"verification_type": "phone"}]

        signals = AccountRepository().lock_signals(conn, "new-user")

        statements = [c.args[0] for c in mock_cursor.execute.call_args_list]
        assert "ON CONFLICT (user_id) DO NOTHING" in statements[0]
        assert "FOR UPDATE" in statements[1]
        assert signals.total_transactions == 0
        assert signals.approved_verifications == frozenset({VerificationType.PHONE})
        conn.commit.assert_not_called()

    def test_reads_counters(self) -> None:
        conn = MagicMock()
        mock_cursor = mock_cursor_on(conn)
        mock_cursor.fetchone.return_value = {
            "total_transactions": 10,
            "successful_transactions": 9,
            "disputes_raised": 1,
            "reports_received": 2,
            "helpful_marks": 4,
            "verified_cultural_items": 3,
            "upheld_cultural_flags": 1,
        }
        mock_cursor.fetchall.return_value = []

        signals = AccountRepository().lock_signals(conn, "seller-1")

        assert signals.successful_transactions == 9
        assert signals.upheld_cultural_flags == 1



class TestRecentTransactions:
    @patch(f"{_MODULE}.get_connection")
    def test_passes_limit(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = mock_connection(mock_get_conn)
        mock_cursor.fetchall.return_value = [
            {"amount": "12.50", "successful": True, "created_at": T0},
        ]

        transactions = AccountRepository().recent_transactions("buyer-1", limit=5)

        assert transactions[0].amount == 12.5
        _sql, params = mock_cursor.execute.call_args.args
        assert params == ("buyer-1", 5)


class TestWrites:
    @patch(f"{_MODULE}.get_connection")
    def test_record_transaction_updates_counters(self, mock_get_conn: MagicMock) -> None:
        mock_conn, _cursor = mock_connection(mock_get_conn)

        AccountRepository().record_transaction("buyer-1", 40.0, successful=True, disputed=True)

        assert mock_conn.execute.call_count == 2
        _sql, params = mock_conn.execute.call_args_list[1].args
        assert params == ("buyer-1", 1, 1)
        mock_conn.commit.assert_called_once()

    @patch(POOL_CONNECTION)
    def test_security_flag_is_idempotent_in_sql(self, mock_get_conn: MagicMock) -> None:
        mock_conn, _cursor = mock_connection(mock_get_conn)

        AccountRepository().add_security_flag("buyer-1", "fraud_review")

        sql, _params = mock_conn.execute.call_args.args
        assert "security_flags ? %s::text" in sql
        mock_conn.commit.assert_called_once()

    @patch(POOL_CONNECTION)
    def test_security_flag_joins_caller_transaction(self, mock_get_conn: MagicMock) -> None:
        conn = MagicMock()

        AccountRepository().add_security_flag("buyer-1", "fraud_review", conn=conn)

        conn.execute.assert_called_once()
        conn.commit.assert_not_called()
        mock_get_conn.assert_not_called()

    @patch(f"{_MODULE}.get_connection")
    def test_increment_counter(self, mock_get_conn: MagicMock) -> None:
        mock_conn, _cursor = mock_connection(mock_get_conn)

        AccountRepository().increment_counter("seller-1", "reports_received")

        sql, params = mock_conn.execute.call_args.args
        assert "reports_received = accounts.reports_received + %(amount)s" in sql
        assert params == {"user_id": "seller-1", "amount": 1}

    def test_increment_counter_rejects_unknown_column(self) -> None:
        with pytest.raises(ValueError, match="Unknown account counter"):
            AccountRepository().increment_counter("seller-1", "overall_score; DROP TABLE")
