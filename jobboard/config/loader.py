"""Configuration loader for the job board core."""

from pathlib import Path
from typing import List, Optional, Tuple

import yaml
from pydantic import ValidationError

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .models import AppConfig
from .validators import check_for_warnings, emit_warnings

DEFAULT_CONFIG_LOCATIONS = (Path("config.yaml"), Path("config") / "config.yaml")


def load_config(config_path: Optional[Path] = None) -> Tuple[AppConfig, EnvironmentConfig]:
    """Load and validate the YAML application file and environment variables.

    The file is looked up at ``config_path`` if given, otherwise at
    ./config.yaml and then ./config/config.yaml.

    Raises:
        ConfigurationError: If configuration is invalid or the file is not found
    """
    config_file = _find_config_file(config_path)
    app_config = load_app_config(config_file)

    try:
        env_config = load_environment_config()
    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load environment configuration: {e}",
            suggestions=["Copy .env.example to .env and fill in your credentials"],
        ) from e

    return app_config, env_config


def load_app_config(config_file: Path) -> AppConfig:
    """Parse and validate one YAML application file.

    An empty file yields the default configuration.

    Raises:
        ConfigurationError: If the file cannot be read, parsed or validated
    """
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            config_dict = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(
            f"Configuration file not found: {config_file}",
            suggestions=[
                "Copy config.example.yaml to config.yaml",
                f"Ensure {config_file} exists and is readable",
            ],
        ) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse YAML configuration: {e}",
            suggestions=[
                "Check YAML syntax in your config file",
                "Ensure proper indentation (use spaces, not tabs)",
            ],
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Failed to read configuration file: {e}",
            suggestions=[f"Ensure {config_file} is readable", "Check file permissions"],
        ) from e

    if config_dict is None:
        config_dict = {}

    if not isinstance(config_dict, dict):
        raise ConfigurationError(
            "Configuration file must contain a mapping at the top level",
            suggestions=["Review config.example.yaml for the expected layout"],
        )

    warnings = check_for_warnings(config_dict)
    if warnings:
        emit_warnings(warnings)

    try:
        return AppConfig.model_validate(config_dict)
    except ValidationError as e:
        raise ConfigurationError(
            "Configuration validation failed",
            errors=_format_validation_errors(e),
            suggestions=[
                "Review config.example.yaml for correct format",
                "Verify field types match the expected schema",
            ],
        ) from e


def _format_validation_errors(error: ValidationError) -> List[str]:
    errors = []
    for item in error.errors():
        field_path = " -> ".join(str(loc) for loc in item["loc"])
        error_type = item["type"]

        if error_type == "missing":
            errors.append(f"Missing required field: {field_path}")
        elif error_type == "extra_forbidden":
            errors.append(f"Unknown field: {field_path}")
        elif error_type in ("string_type", "int_type", "int_parsing", "bool_type", "float_type"):
            expected_type = error_type.split("_")[0]
            errors.append(
                f"Invalid type for '{field_path}': expected {expected_type}, got {item.get('input')!r}"
            )
        elif "enum" in error_type:
            errors.append(f"Invalid value for '{field_path}': {item['msg']}")
        elif field_path:
            errors.append(f"{field_path}: {item['msg']}")
        else:
            errors.append(item["msg"])
    return errors


def _find_config_file(config_path: Optional[Path] = None) -> Path:
    """Resolve the configuration file path.

    Raises:
        ConfigurationError: If no config file is found
    """
    if config_path:
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigurationError(
                f"Specified configuration file not found: {config_path}",
                suggestions=[f"Ensure {config_path} exists", "Check the path and try again"],
            )
        return config_path

    for candidate in DEFAULT_CONFIG_LOCATIONS:
        if candidate.exists():
            return candidate

    raise ConfigurationError(
        "Configuration file not found",
        errors=[f"Tried: {candidate}" for candidate in DEFAULT_CONFIG_LOCATIONS],
        suggestions=[
            "Copy config.example.yaml to config.yaml",
            "Use --config flag to specify a custom location",
        ],
    )
