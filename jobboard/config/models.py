"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from jobboard.matching.scoring import DEFAULT_WEIGHTS

from .duration import DurationParseError, parse_duration, validate_duration_range

# Poll interval bounds (seconds)
MIN_POLL_INTERVAL = 10
MAX_POLL_INTERVAL = 3600

# Upper bound on a single email retry delay (seconds)
MAX_RETRY_DELAY = 60.0


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    JSON = "json"
    KEY_VALUE = "key-value"


class DispatchConfig(BaseModel):
    """Alert dispatch and outbox relay settings."""

    poll_interval: str = Field("1m", description="How often the relay drains the outbox")
    max_workers: int = Field(8, ge=1, le=64, description="Concurrent notification sends")
    send_timeout_seconds: int = Field(
        120, ge=1, le=600,
        description="Upper bound on a single notification send, measured from when it starts",
    )
    batch_size: int = Field(100, ge=1, le=1000, description="Outbox events drained per poll")
    max_event_attempts: int = Field(
        5, ge=1, le=20, description="Dispatch attempts before an event is marked failed"
    )

    # Computed field
    poll_interval_seconds: Optional[int] = None

    @field_validator("poll_interval")
    @classmethod
    def validate_poll_interval(cls, v: str) -> str:
        try:
            seconds = parse_duration(v)
            validate_duration_range(
                seconds, MIN_POLL_INTERVAL, MAX_POLL_INTERVAL, label="Poll interval"
            )
            return v
        except DurationParseError as e:
            raise ValueError(str(e)) from e

    @model_validator(mode="after")
    def compute_poll_interval_seconds(self):
        self.poll_interval_seconds = parse_duration(self.poll_interval)
        return self


class EmailConfig(BaseModel):
    """Email notification settings."""

    use_tls: bool = Field(True, description="Use TLS/STARTTLS for secure connection")
    max_retries: int = Field(
        3, ge=0, le=10, description="Number of retry attempts for failed email sends"
    )
    retry_backoff_multiplier: float = Field(
        2.0, ge=1.0, le=5.0, description="Exponential backoff multiplier for retries"
    )
    retry_initial_delay: int = Field(
        5, ge=1, le=60, description="Initial retry delay in seconds"
    )
    smtp_timeout_seconds: int = Field(
        10, ge=1, le=120, description="Socket timeout for one SMTP delivery attempt"
    )

    def retry_delay(self, attempt: int) -> float:
        """Delay before ``attempt`` (2 for the first retry), capped at MAX_RETRY_DELAY."""
        delay = self.retry_initial_delay * (self.retry_backoff_multiplier ** (attempt - 2))
        return min(delay, MAX_RETRY_DELAY)

    def delivery_budget_seconds(self) -> float:
        """Longest time one send can take: every attempt times out and every delay is slept."""
        attempts = self.max_retries + 1
        delays = sum(self.retry_delay(attempt) for attempt in range(2, attempts + 1))
        return attempts * self.smtp_timeout_seconds + delays


class ScoreWeights(BaseModel):
    """Relative weight of each resume alert score dimension."""

    skills: float = Field(DEFAULT_WEIGHTS["skills"], ge=0)
    categories: float = Field(DEFAULT_WEIGHTS["categories"], ge=0)
    location: float = Field(DEFAULT_WEIGHTS["location"], ge=0)
    experience: float = Field(DEFAULT_WEIGHTS["experience"], ge=0)
    education: float = Field(DEFAULT_WEIGHTS["education"], ge=0)

    @model_validator(mode="after")
    def validate_any_positive(self):
        if not any(v > 0 for v in self.as_dict().values()):
            raise ValueError("At least one score weight must be positive")
        return self

    def as_dict(self) -> Dict[str, float]:
        return self.model_dump()


class ResumeAlertsConfig(BaseModel):
    """Resume alert scoring settings."""

    min_match_score: float = Field(
        0.0, ge=0.0, le=100.0, description="Profiles scoring below this are not sent"
    )
    weights: ScoreWeights = Field(default_factory=ScoreWeights)


class LoggingConfig(BaseModel):
    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the job board core.

    Every section is optional; an empty document yields the defaults.
    """

    environment: str = Field("local", min_length=1, description="Environment label for logs")
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    email: EmailConfig = Field(default_factory=EmailConfig)
    resume_alerts: ResumeAlertsConfig = Field(default_factory=ResumeAlertsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def validate_send_timeout_covers_retries(self):
        budget = self.email.delivery_budget_seconds()
        if budget > self.dispatch.send_timeout_seconds:
            raise ValueError(
                f"dispatch.send_timeout_seconds ({self.dispatch.send_timeout_seconds}s) is shorter "
                f"than the email retry budget ({budget:.0f}s); raise the timeout or lower "
                f"email.max_retries / email.smtp_timeout_seconds"
            )
        return self
