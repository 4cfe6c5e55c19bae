"""Environment variable loading and validation."""

import os
from typing import List, Optional

from email_validator import EmailNotValidError, validate_email

from .exceptions import ConfigurationError

DEFAULT_DATABASE_URL = "sqlite:///./data/job_board.db"
DEFAULT_FRONTEND_URL = "http://localhost:3000"
VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class EnvironmentConfig:
    """Environment variable configuration holder."""

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        smtp_user: Optional[str] = None,
        smtp_pass: Optional[str] = None,
        smtp_sender_name: Optional[str] = None,
        smtp_sender_address: Optional[str] = None,
        frontend_url: Optional[str] = None,
        log_level: Optional[str] = None,
        database_url: Optional[str] = None,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_pass = smtp_pass
        self.smtp_sender_name = smtp_sender_name or "Job Board"
        self.smtp_sender_address = smtp_sender_address
        self.frontend_url = (frontend_url or DEFAULT_FRONTEND_URL).rstrip("/")
        self.log_level = log_level
        self.database_url = database_url or DEFAULT_DATABASE_URL


def load_environment_config() -> EnvironmentConfig:
    """Load and validate environment variables.

    Required:
    - SMTP_HOST: SMTP server hostname
    - SMTP_PORT: SMTP server port (1-65535)

    Optional:
    - SMTP_USER / SMTP_PASS: SMTP credentials (both or neither)
    - SMTP_SENDER_NAME: Display name for the sender
    - SMTP_SENDER_ADDRESS: From address (defaults to SMTP_USER, then noreply@SMTP_HOST)
    - FRONTEND_URL: Base URL used for links in emails
    - LOG_LEVEL: Override log level
    - DATABASE_URL: Database URL (default: sqlite:///./data/job_board.db)

    Raises:
        ConfigurationError: If required variables are missing or invalid
    """
    errors: List[str] = []

    smtp_host = os.getenv("SMTP_HOST")
    smtp_port_str = os.getenv("SMTP_PORT")
    smtp_user = os.getenv("SMTP_USER")
    smtp_pass = os.getenv("SMTP_PASS")
    smtp_sender_name = os.getenv("SMTP_SENDER_NAME")
    smtp_sender_address = os.getenv("SMTP_SENDER_ADDRESS")
    frontend_url = os.getenv("FRONTEND_URL")
    log_level = os.getenv("LOG_LEVEL")
    database_url = os.getenv("DATABASE_URL")

    if not smtp_host:
        errors.append("Missing required environment variable: SMTP_HOST")

    if not smtp_port_str:
        errors.append("Missing required environment variable: SMTP_PORT")

    smtp_port = None
    if smtp_port_str:
        try:
            smtp_port = int(smtp_port_str)
            if smtp_port < 1 or smtp_port > 65535:
                errors.append(f"Invalid SMTP_PORT: {smtp_port}. Must be between 1 and 65535.")
        except ValueError:
            errors.append(f"Invalid SMTP_PORT: '{smtp_port_str}'. Must be a valid integer.")

    if smtp_sender_address:
        try:
            smtp_sender_address = validate_email(
                smtp_sender_address.strip(), check_deliverability=False
            ).normalized
        except EmailNotValidError as e:
            errors.append(f"Invalid SMTP_SENDER_ADDRESS: '{smtp_sender_address}' - {e}")

    if frontend_url and not frontend_url.startswith(("http://", "https://")):
        errors.append(f"Invalid FRONTEND_URL: '{frontend_url}'. Must start with http:// or https://")

    if log_level and log_level.upper() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
        )

    if smtp_user and not smtp_pass:
        errors.append("SMTP_USER is set but SMTP_PASS is not. Both must be set for authentication.")
    elif smtp_pass and not smtp_user:
        errors.append("SMTP_PASS is set but SMTP_USER is not. Both must be set for authentication.")

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in your credentials",
                "Ensure SMTP_HOST and SMTP_PORT are set",
                "Verify SMTP_PORT is a number between 1 and 65535",
            ],
        )

    return EnvironmentConfig(
        smtp_host=smtp_host,
        smtp_port=smtp_port,
        smtp_user=smtp_user,
        smtp_pass=smtp_pass,
        smtp_sender_name=smtp_sender_name,
        smtp_sender_address=smtp_sender_address,
        frontend_url=frontend_url,
        log_level=log_level.upper() if log_level else None,
        database_url=database_url,
    )
