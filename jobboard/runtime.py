"""Wiring of the alerting runtime from validated configuration."""

from dataclasses import dataclass
from typing import Optional

from jobboard.config.environment import EnvironmentConfig
from jobboard.config.models import AppConfig
from jobboard.dispatch import AlertDispatcher
from jobboard.events import EventBus, OutboxRelay
from jobboard.matching.engine import CriteriaMatcher
from jobboard.matching.scoring import MatchScorer
from jobboard.notifications.gateway import EmailNotificationGateway, NotificationGateway
from jobboard.services import CandidateProfileService, JobPostService


@dataclass
class Runtime:
    """Shared service singletons for one process."""

    dispatcher: AlertDispatcher
    relay: OutboxRelay
    bus: EventBus
    jobs: JobPostService
    profiles: CandidateProfileService

    def shutdown(self, wait: bool = True) -> None:
        self.bus.shutdown(wait=wait)


def build_runtime(
    app_config: AppConfig,
    env_config: EnvironmentConfig,
    gateway: Optional[NotificationGateway] = None,
    synchronous: bool = False,
) -> Runtime:
    """Build the dispatcher, relay, event bus and write services.

    The database must already be initialized. ``gateway`` defaults to the
    email gateway; ``synchronous`` runs bus handlers inline.
    """
    gateway = gateway or EmailNotificationGateway(env_config, app_config.email)

    dispatcher = AlertDispatcher(
        gateway=gateway,
        matcher=CriteriaMatcher(),
        scorer=MatchScorer(app_config.resume_alerts.weights.as_dict()),
        dispatch_config=app_config.dispatch,
        min_match_score=app_config.resume_alerts.min_match_score,
    )
    relay = OutboxRelay(dispatcher, config=app_config.dispatch)
    bus = EventBus(synchronous=synchronous)
    relay.attach(bus)

    return Runtime(
        dispatcher=dispatcher,
        relay=relay,
        bus=bus,
        jobs=JobPostService(bus=bus),
        profiles=CandidateProfileService(bus=bus),
    )
