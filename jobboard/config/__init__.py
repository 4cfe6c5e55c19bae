"""Configuration management for the job board core."""

from .duration import DurationParseError, parse_duration
from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_app_config, load_config
from .models import (
    AppConfig,
    DispatchConfig,
    EmailConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    ResumeAlertsConfig,
    ScoreWeights,
)

__all__ = [
    "load_config",
    "load_app_config",
    "load_environment_config",
    "parse_duration",
    "AppConfig",
    "DispatchConfig",
    "EmailConfig",
    "ResumeAlertsConfig",
    "ScoreWeights",
    "LoggingConfig",
    "EnvironmentConfig",
    "LogLevel",
    "LogFormat",
    "ConfigurationError",
    "DurationParseError",
]
