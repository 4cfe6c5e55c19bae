"""Data models and exceptions for the notification gateway."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class NotificationFailure(Exception):
    """Base exception for notification failures.

    The dispatcher catches every NotificationFailure; it never propagates to
    the write that triggered the dispatch.
    """

    pass


class NotificationTemplateError(NotificationFailure):
    """Raised when template rendering fails due to configuration or missing variables."""

    pass


class SMTPDeliveryError(NotificationFailure):
    """Raised when SMTP delivery fails after all retry attempts."""

    pass


class RecipientAddressError(NotificationFailure):
    """Raised when the recipient address is not a valid email address."""

    pass


class TemplateKind(str, Enum):
    JOB_ALERT = "job_alert"
    RESUME_ALERT = "resume_alert"


@dataclass(frozen=True)
class NotificationRequest:
    """One notification to deliver.

    Attributes:
        recipient_address: Resolved contact address of the alert owner
        template_kind: Which template set renders the message
        subject_id: Job post or profile the notification is about
        metadata: Template context (see payloads.build_*_metadata)
    """

    recipient_address: str
    template_kind: TemplateKind
    subject_id: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    alert_id: Optional[str] = None
