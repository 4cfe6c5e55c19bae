"""Unit tests for SMTP client wrapper.

Tests the SMTPClient for:
- Connection handling (SMTP and SMTP_SSL)
- STARTTLS negotiation
- Authentication (with and without credentials)
- Error wrapping
- Recipient validation and sender address building
"""

import smtplib
from email.message import EmailMessage
from unittest.mock import MagicMock

import pytest

from jobboard.config.environment import EnvironmentConfig
from jobboard.notifications.models import RecipientAddressError, SMTPDeliveryError
from jobboard.notifications.smtp_client import SMTPClient, build_sender_address, validate_recipient


@pytest.fixture
def env_config_with_auth():
    return EnvironmentConfig(
        smtp_host="smtp.mailhost.in",
        smtp_port=587,
        smtp_user="alerts@jobboard.in",
        smtp_pass="secret123",
    )


@pytest.fixture
def env_config_implicit_tls():
    return EnvironmentConfig(smtp_host="smtp.mailhost.in", smtp_port=465)


@pytest.fixture
def message():
    msg = EmailMessage()
    msg["Subject"] = "New Job Alert: CNC Operator"
    msg["To"] = "priya@candidates.in"
    msg.set_content("body")
    return msg


class TestSMTPClient:
    def test_starttls_login_and_send(self, env_config_with_auth, message):
        smtp = MagicMock()
        factory = MagicMock(return_value=smtp)
        client = SMTPClient(smtp_factory=factory, timeout=12)

        client.send(message, env_config_with_auth, use_tls=True)

        factory.assert_called_once_with("smtp.mailhost.in", 587, timeout=12)
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("alerts@jobboard.in", "secret123")
        smtp.send_message.assert_called_once_with(message)
        smtp.quit.assert_called_once()

    def test_no_tls_no_auth(self, message):
        smtp = MagicMock()
        env = EnvironmentConfig(smtp_host="localhost", smtp_port=25)

        SMTPClient(smtp_factory=MagicMock(return_value=smtp)).send(message, env, use_tls=False)

        smtp.starttls.assert_not_called()
        smtp.login.assert_not_called()
        smtp.send_message.assert_called_once()

    def test_port_465_uses_implicit_tls(self, env_config_implicit_tls, message):
        plain, ssl_conn = MagicMock(), MagicMock()
        ssl_factory = MagicMock(return_value=ssl_conn)
        client = SMTPClient(smtp_factory=plain, smtp_ssl_factory=ssl_factory)

        client.send(message, env_config_implicit_tls)

        plain.assert_not_called()
        assert ssl_factory.call_args.args == ("smtp.mailhost.in", 465)
        assert "context" in ssl_factory.call_args.kwargs
        ssl_conn.starttls.assert_not_called()

    def test_smtp_error_wrapped_and_connection_closed(self, env_config_with_auth, message):
        smtp = MagicMock()
        smtp.send_message.side_effect = smtplib.SMTPRecipientsRefused({})
        client = SMTPClient(smtp_factory=MagicMock(return_value=smtp))

        with pytest.raises(SMTPDeliveryError, match="SMTP error"):
            client.send(message, env_config_with_auth)
        smtp.quit.assert_called_once()

    def test_network_error_wrapped(self, env_config_with_auth, message):
        client = SMTPClient(smtp_factory=MagicMock(side_effect=ConnectionRefusedError("refused")))

        with pytest.raises(SMTPDeliveryError, match="Network error"):
            client.send(message, env_config_with_auth)

    def test_quit_failure_is_not_raised(self, env_config_with_auth, message):
        smtp = MagicMock()
        smtp.quit.side_effect = smtplib.SMTPServerDisconnected("gone")

        SMTPClient(smtp_factory=MagicMock(return_value=smtp)).send(message, env_config_with_auth)


class TestAddresses:
    def test_validate_recipient_normalizes(self):
        assert validate_recipient("  priya@candidates.in ") == "priya@candidates.in"

    @pytest.mark.parametrize("address", ["", "   ", "not-an-email", "a@b@c.in"])
    def test_validate_recipient_rejects(self, address):
        with pytest.raises(RecipientAddressError):
            validate_recipient(address)

    def test_sender_address_fallbacks(self):
        assert build_sender_address(
            EnvironmentConfig("smtp.mailhost.in", 587, smtp_sender_address="alerts@jobboard.in")
        ) == "Job Board <alerts@jobboard.in>"
        assert build_sender_address(
            EnvironmentConfig("smtp.mailhost.in", 587, smtp_user="user@jobboard.in", smtp_sender_name="Kovai Jobs")
        ) == "Kovai Jobs <user@jobboard.in>"
        assert build_sender_address(EnvironmentConfig("smtp.mailhost.in", 587)) == "Job Board <noreply@smtp.mailhost.in>"
