from typing import Any

import psycopg
import pytest

from trust_safety.database.repositories.submission_repository import SubmissionRepository
from trust_safety.exceptions import InvalidTransitionError
from trust_safety.intake.models import Disposition, SubmissionKind, SubmissionState
from trust_safety.scoring.models import AnalysisResult, ProviderKind


def _create(repo: SubmissionRepository, title: str = "Kente cloth") -> str:
    return repo.create(
        kind=SubmissionKind.LISTING,
        submitter_id="seller-1",
        payload={"title": title},
        item_id="item-1",
    ).id


@pytest.mark.integration
class TestClaimNext:
    def test_claims_oldest_intake_submission(self, db_conn: psycopg.Connection[Any]) -> None:
        repo = SubmissionRepository()
        first = _create(repo, "first")
        _create(repo, "second")

        claimed = repo.claim_next(db_conn)

        assert claimed is not None
        assert claimed.id == first
        assert claimed.state == SubmissionState.ANALYZING
        assert claimed.started_at is not None

    def test_returns_none_when_nothing_in_intake(
        self, db_conn: psycopg.Connection[Any]
    ) -> None:
        assert SubmissionRepository().claim_next(db_conn) is None


@pytest.mark.integration
class TestLifecycle:
    def test_complete_persists_results_once(self, clean_db: None) -> None:
        repo = SubmissionRepository()
        submission_id = _create(repo)
        repo.start_analysis(submission_id)
        results = [AnalysisResult(provider=ProviderKind.CULTURAL, risk_score=0.75)]

        repo.complete(submission_id, Disposition.FLAGGED, results, {"disposition": "flagged"})

        stored = repo.find_by_id(submission_id)
        assert stored.state == SubmissionState.COMPLETED
        assert stored.disposition == Disposition.FLAGGED
        assert repo.list_results(submission_id) == results

        with pytest.raises(InvalidTransitionError):
            repo.complete(submission_id, Disposition.SAFE, results, {})
        assert len(repo.list_results(submission_id)) == 1

    def test_start_analysis_is_compare_and_swap(self, clean_db: None) -> None:
        repo = SubmissionRepository()
        submission_id = _create(repo)
        repo.start_analysis(submission_id)

        with pytest.raises(InvalidTransitionError):
            repo.start_analysis(submission_id)

    def test_failed_submission_cannot_complete(self, clean_db: None) -> None:
        repo = SubmissionRepository()
        submission_id = _create(repo)
        repo.start_analysis(submission_id)
        repo.mark_failed(submission_id, "Database unavailable")

        with pytest.raises(InvalidTransitionError):
            repo.complete(submission_id, Disposition.SAFE, [], {})

        stored = repo.find_by_id(submission_id)
        assert stored.state == SubmissionState.FAILED
        assert stored.error_message == "Database unavailable"
