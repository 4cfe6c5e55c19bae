"""Notification gateway for job alert and resume alert emails.

This module provides:
- NotificationGateway: protocol the dispatcher sends through
- EmailNotificationGateway: Jinja2 templates over SMTP with retry/backoff
- NotificationRequest / TemplateKind: what to send and how to render it
- Payload builders for job alert and resume alert template context
"""

from .gateway import EmailNotificationGateway, NotificationGateway
from .models import (
    NotificationFailure,
    NotificationRequest,
    NotificationTemplateError,
    RecipientAddressError,
    SMTPDeliveryError,
    TemplateKind,
)
from .payloads import build_job_alert_metadata, build_resume_alert_metadata
from .smtp_client import SMTPClient, build_sender_address, validate_recipient
from .templates import TemplateRenderer

__all__ = [
    "NotificationGateway",
    "EmailNotificationGateway",
    "NotificationRequest",
    "TemplateKind",
    "NotificationFailure",
    "NotificationTemplateError",
    "SMTPDeliveryError",
    "RecipientAddressError",
    "TemplateRenderer",
    "SMTPClient",
    "build_job_alert_metadata",
    "build_resume_alert_metadata",
    "build_sender_address",
    "validate_recipient",
]
