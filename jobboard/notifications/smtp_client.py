"""SMTP client wrapper for email delivery."""

import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Callable, Optional

from email_validator import EmailNotValidError, validate_email

from jobboard.config.environment import EnvironmentConfig

from .models import RecipientAddressError, SMTPDeliveryError

logger = logging.getLogger(__name__)

IMPLICIT_TLS_PORT = 465


class SMTPClient:
    """Wrapper around smtplib for sending one message per connection.

    Connection factories are injectable so tests never open sockets.
    """

    def __init__(
        self,
        smtp_factory: Optional[Callable] = None,
        smtp_ssl_factory: Optional[Callable] = None,
        timeout: float = 30.0,
    ):
        self.smtp_factory = smtp_factory or smtplib.SMTP
        self.smtp_ssl_factory = smtp_ssl_factory or smtplib.SMTP_SSL
        self.timeout = timeout

    def send(
        self,
        message: EmailMessage,
        env_config: EnvironmentConfig,
        use_tls: bool = True,
    ) -> None:
        """Send an email message via SMTP.

        Port 465 uses implicit TLS; any other port uses plain SMTP upgraded
        with STARTTLS when ``use_tls`` is set.

        Raises:
            SMTPDeliveryError: If message delivery fails
        """
        smtp = None
        try:
            if env_config.smtp_port == IMPLICIT_TLS_PORT:
                logger.debug(
                    f"Connecting to {env_config.smtp_host}:{env_config.smtp_port} with implicit TLS"
                )
                smtp = self.smtp_ssl_factory(
                    env_config.smtp_host,
                    env_config.smtp_port,
                    context=ssl.create_default_context(),
                    timeout=self.timeout,
                )
            else:
                logger.debug(f"Connecting to {env_config.smtp_host}:{env_config.smtp_port}")
                smtp = self.smtp_factory(
                    env_config.smtp_host, env_config.smtp_port, timeout=self.timeout
                )
                if use_tls:
                    smtp.starttls(context=ssl.create_default_context())

            if env_config.smtp_user and env_config.smtp_pass:
                smtp.login(env_config.smtp_user, env_config.smtp_pass)

            smtp.send_message(message)
            logger.debug(f"Message sent to {message['To']}")

        except smtplib.SMTPException as e:
            raise SMTPDeliveryError(f"SMTP error during message delivery: {e}") from e
        except OSError as e:
            raise SMTPDeliveryError(f"Network error during SMTP connection: {e}") from e
        finally:
            if smtp is not None:
                try:
                    smtp.quit()
                except (smtplib.SMTPException, OSError) as e:
                    logger.warning(f"Error closing SMTP connection: {e}")


def validate_recipient(address: str) -> str:
    """Validate and normalise a single recipient address.

    Raises:
        RecipientAddressError: If the address is invalid
    """
    if not address or not address.strip():
        raise RecipientAddressError("Recipient address is empty")
    try:
        return validate_email(address.strip(), check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise RecipientAddressError(f"Invalid recipient address '{address}': {e}") from e


def build_sender_address(env_config: EnvironmentConfig) -> str:
    """Build the From header.

    Uses SMTP_SENDER_ADDRESS, then SMTP_USER, then noreply@SMTP_HOST.

    Example:
        >>> build_sender_address(env)
        'Job Board <alerts@example.com>'
    """
    sender_email = (
        env_config.smtp_sender_address
        or env_config.smtp_user
        or f"noreply@{env_config.smtp_host}"
    )
    return f"{env_config.smtp_sender_name} <{sender_email}>"
