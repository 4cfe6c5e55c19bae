"""Structured logging for the job board core.

Every significant log line carries an ``event`` field (``dispatch.completed``,
``access.denied``, ...) and a ``component`` field stamped by get_logger().
"""

import logging
from typing import Optional


class ComponentLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges the component field with per-call extras."""

    def process(self, msg, kwargs):
        extra = kwargs.get("extra", {})

        # Call's extra takes precedence
        kwargs["extra"] = {**self.extra, **extra}

        return msg, kwargs


def get_logger(name: str, component: Optional[str] = None):
    """Get a logger with an optional default component field.

    Args:
        name: Logger name (typically __name__)
        component: Optional component identifier to inject into all logs

    Returns:
        Logger or ComponentLoggerAdapter instance

    Example:
        >>> logger = get_logger(__name__, component="dispatch")
        >>> logger.info("Dispatch started", extra={"event": "dispatch.started"})
    """
    logger = logging.getLogger(name)

    if component:
        return ComponentLoggerAdapter(logger, {"component": component})

    return logger
