from dataclasses import dataclass
from pathlib import Path

from trust_safety.analysis.orchestrator import AnalysisOrchestrator
from trust_safety.config.settings import Settings
from trust_safety.database.repositories.account_repository import AccountRepository
from trust_safety.database.repositories.moderation_repository import ModerationRepository
from trust_safety.database.repositories.notification_repository import NotificationRepository
from trust_safety.database.repositories.submission_repository import SubmissionRepository
from trust_safety.database.repositories.trust_score_repository import TrustScoreRepository
from trust_safety.intake.service import TrustSafetyIntake
from trust_safety.metrics.sink import LogMetricsSink, MetricsSink
from trust_safety.moderation.queue import ModerationQueue
from trust_safety.notifications.channels.factory import ChannelFactory
from trust_safety.notifications.dispatcher import NotificationDispatcher
from trust_safety.notifications.queue import NotificationQueue
from trust_safety.scoring import ScorerFactory
from trust_safety.storage.local_storage import LocalObjectStorage
from trust_safety.trust.aggregator import TrustScoreAggregator


@dataclass
class Pipeline:
    """The wired object graph. Every component shares one metrics sink."""

    intake: TrustSafetyIntake
    orchestrator: AnalysisOrchestrator
    moderation: ModerationQueue
    trust: TrustScoreAggregator
    notifications: NotificationQueue
    dispatcher: NotificationDispatcher
    metrics: MetricsSink


def build_pipeline(settings: Settings, metrics: MetricsSink | None = None) -> Pipeline:
    """Build all pipeline components from settings. Requires an initialized pool."""
    metrics = metrics or LogMetricsSink()
    storage = LocalObjectStorage(Path(settings.storage_root))

    accounts = AccountRepository()
    submissions = SubmissionRepository()
    notification_repo = NotificationRepository()

    notifications = NotificationQueue(notification_repo, metrics)
    trust = TrustScoreAggregator(accounts, TrustScoreRepository(), metrics)
    moderation = ModerationQueue(ModerationRepository(), trust, notifications, metrics, settings)
    orchestrator = AnalysisOrchestrator(
        submissions=submissions,
        scorers=ScorerFactory.create(settings, storage),
        accounts=accounts,
        trust=trust,
        moderation=moderation,
        notifications=notifications,
        metrics=metrics,
        settings=settings,
    )
    dispatcher = NotificationDispatcher(
        notification_repo,
        ChannelFactory.create(settings, accounts.get_email),
        metrics,
        settings,
    )
    intake = TrustSafetyIntake(submissions, moderation, storage, metrics, settings)

    return Pipeline(
        intake=intake,
        orchestrator=orchestrator,
        moderation=moderation,
        trust=trust,
        notifications=notifications,
        dispatcher=dispatcher,
        metrics=metrics,
    )
