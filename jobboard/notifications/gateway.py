"""Notification gateway: the dispatcher's only outbound collaborator.

The dispatcher depends on the NotificationGateway protocol. The email
implementation renders the request's template kind, builds a multipart
message and delivers it over SMTP with retry and exponential backoff.
"""

import logging
import time
from email.message import EmailMessage
from typing import Callable, Optional, Protocol, runtime_checkable

from jobboard.config.environment import EnvironmentConfig
from jobboard.config.models import EmailConfig
from jobboard.logging import get_logger
from jobboard.logging.context import log_context

from .models import NotificationRequest, SMTPDeliveryError
from .smtp_client import SMTPClient, build_sender_address, validate_recipient
from .templates import TemplateRenderer

logger = get_logger(__name__, component="notification")


@runtime_checkable
class NotificationGateway(Protocol):
    """Delivers one notification.

    Implementations raise NotificationFailure (or a subclass) when the
    notification could not be delivered and return None on success.
    """

    def send(self, request: NotificationRequest) -> None:
        ...


class EmailNotificationGateway:
    """Email implementation of NotificationGateway.

    Safe to call from several threads at once: every send opens its own SMTP
    connection and the template environment is read-only after construction.
    """

    def __init__(
        self,
        env_config: EnvironmentConfig,
        email_config: Optional[EmailConfig] = None,
        template_renderer: Optional[TemplateRenderer] = None,
        smtp_client: Optional[SMTPClient] = None,
        sleep: Callable[[float], None] = time.sleep,
        logger_instance: Optional[logging.Logger] = None,
    ):
        self.env_config = env_config
        self.email_config = email_config or EmailConfig()
        self.template_renderer = template_renderer or TemplateRenderer()
        self.smtp_client = smtp_client or SMTPClient(timeout=self.email_config.smtp_timeout_seconds)
        self.sleep = sleep
        self.logger = logger_instance or logger

    def build_message(self, request: NotificationRequest) -> EmailMessage:
        """Render the request into a text + HTML message.

        Raises:
            RecipientAddressError: If the recipient address is invalid
            NotificationTemplateError: If rendering fails
        """
        recipient = validate_recipient(request.recipient_address)
        context = {**request.metadata, "frontend_url": self.env_config.frontend_url}
        rendered = self.template_renderer.render(request.template_kind, context)

        message = EmailMessage()
        message["Subject"] = rendered["subject"]
        message["From"] = build_sender_address(self.env_config)
        message["To"] = recipient
        message.set_content(rendered["text_body"])
        message.add_alternative(rendered["html_body"], subtype="html")
        return message

    def retry_delay(self, attempt: int) -> float:
        """Delay before ``attempt`` (2 for the first retry)."""
        return self.email_config.retry_delay(attempt)

    def send(self, request: NotificationRequest) -> None:
        """Deliver ``request``, retrying SMTP failures.

        Invalid recipients and template errors are not retried.

        Raises:
            RecipientAddressError: If the recipient address is invalid
            NotificationTemplateError: If rendering fails
            SMTPDeliveryError: If every delivery attempt failed
        """
        with log_context(subject_id=request.subject_id, alert_id=request.alert_id):
            message = self.build_message(request)

            max_attempts = self.email_config.max_retries + 1
            last_error: Optional[SMTPDeliveryError] = None

            for attempt in range(1, max_attempts + 1):
                if attempt > 1:
                    delay = self.retry_delay(attempt)
                    self.logger.warning(
                        f"Retrying delivery (attempt {attempt}/{max_attempts}) after {delay:.1f}s delay",
                        extra={"event": "notification.send.attempt", "attempt": attempt},
                    )
                    self.sleep(delay)

                try:
                    self.smtp_client.send(message, self.env_config, self.email_config.use_tls)
                except SMTPDeliveryError as e:
                    last_error = e
                    self.logger.warning(
                        f"SMTP delivery failed (attempt {attempt}/{max_attempts}): {e}",
                        extra={
                            "event": "notification.send.failure",
                            "attempt": attempt,
                            "template_kind": request.template_kind,
                            "retry_remaining": attempt < max_attempts,
                        },
                    )
                    continue

                self.logger.info(
                    f"Notification sent to {message['To']} (attempts: {attempt})",
                    extra={
                        "event": "notification.send.success",
                        "attempt": attempt,
                        "template_kind": request.template_kind,
                    },
                )
                return

            raise SMTPDeliveryError(
                f"Delivery to {message['To']} failed after {max_attempts} attempts: {last_error}"
            ) from last_error
