"""Persistence layer for the job board core (SQLAlchemy, SQLite by default).

Public API:
    # Database initialization and session management
    - init_database(database_url: str) -> None
    - get_session() -> ContextManager[Session]
    - close_database() -> None
    - get_engine() -> Engine

    # Repository classes
    - AccountRepository: recipient contact details
    - JobPostRepository: job posts, scoped listing
    - CandidateProfileRepository: candidate profiles
    - AlertSubscriptionRepository: alerts and their delivery statistics
    - AlertDeliveryRepository: dedupe ledger of confirmed deliveries
    - OutboxRepository: post-commit event outbox

Example usage:
    >>> from jobboard.persistence import init_database, get_session, JobPostRepository
    >>> init_database("sqlite:///./data/job_board.db")
    >>> with get_session() as session:
    ...     job = JobPostRepository(session).get("a1b2c3")
"""

from .database import (
    DEFAULT_DATABASE_URL,
    close_database,
    get_engine,
    get_session,
    init_database,
)
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
    RecordNotFoundError,
)
from .repositories import (
    AccountRepository,
    AlertDeliveryRepository,
    AlertSubscriptionRepository,
    CandidateProfileRepository,
    JobPostRepository,
    OutboxRepository,
)

__all__ = [
    "DEFAULT_DATABASE_URL",
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    "AccountRepository",
    "JobPostRepository",
    "CandidateProfileRepository",
    "AlertSubscriptionRepository",
    "AlertDeliveryRepository",
    "OutboxRepository",
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
]
