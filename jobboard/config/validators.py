"""Non-fatal configuration checks reported as warnings."""

import warnings
from typing import Any, Dict, List

from .duration import DurationParseError, parse_duration


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """Check a raw configuration document for likely mistakes.

    Returns:
        List of warning messages (empty if nothing looks suspicious)
    """
    warning_messages = []

    dispatch = config_dict.get("dispatch", {})
    if isinstance(dispatch, dict):
        poll_interval = dispatch.get("poll_interval")
        if isinstance(poll_interval, str):
            try:
                if parse_duration(poll_interval) < 30:
                    warning_messages.append(
                        f"Short poll_interval ({poll_interval}) keeps the database busy"
                    )
            except DurationParseError:
                # Reported as an error by validation
                pass

        max_workers = dispatch.get("max_workers")
        if isinstance(max_workers, int) and max_workers > 32:
            warning_messages.append(
                f"Large max_workers ({max_workers}) may exceed the SMTP server's connection limit"
            )

    resume_alerts = config_dict.get("resume_alerts", {})
    if isinstance(resume_alerts, dict):
        weights = resume_alerts.get("weights", {})
        if isinstance(weights, dict):
            zero = sorted(name for name, value in weights.items() if value == 0)
            if zero:
                warning_messages.append(
                    f"Score weights set to zero are ignored when scoring: {', '.join(zero)}"
                )

        min_score = resume_alerts.get("min_match_score")
        if isinstance(min_score, (int, float)) and min_score >= 90:
            warning_messages.append(
                f"High min_match_score ({min_score}) will suppress most resume alerts"
            )

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
