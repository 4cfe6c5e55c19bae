"""Context propagation for structured logging.

Fields pushed with log_context() are injected into every record emitted
within the scope. Context lives in a ContextVar, so it follows the call chain
within a thread; use bind_log_context() to carry it into executor workers.
"""

from contextvars import ContextVar, Token, copy_context
from typing import Any, Callable, Dict, Optional, TypeVar

T = TypeVar("T")

LogContextVar: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})


def get_log_context() -> Dict[str, Any]:
    """Get a copy of the current logging context."""
    return LogContextVar.get().copy()


def push_log_context(**kwargs) -> Token:
    """Merge new fields into the logging context.

    Returns:
        Token that restores the previous context via pop_log_context()

    Example:
        >>> token = push_log_context(event_id="evt-1", subject_id="job-42")
        >>> pop_log_context(token)
    """
    current = LogContextVar.get()
    return LogContextVar.set({**current, **kwargs})


def pop_log_context(token: Token) -> None:
    """Restore the logging context to a previous state."""
    LogContextVar.reset(token)


def clear_log_context() -> None:
    """Clear all logging context fields. Mostly useful in tests."""
    LogContextVar.set({})


def bind_log_context(func: Callable[..., T]) -> Callable[..., T]:
    """Wrap ``func`` so it runs inside a copy of the caller's context.

    Thread pool workers start with an empty context; submitting the bound
    callable keeps event_id/alert_id on records emitted by the worker.

    Example:
        >>> with log_context(event_id="evt-1"):
        ...     future = executor.submit(bind_log_context(send), request)
    """
    ctx = copy_context()

    def runner(*args, **kwargs):
        return ctx.run(func, *args, **kwargs)

    return runner


class log_context:
    """Context manager for scoped logging context.

    Example:
        >>> with log_context(event_id="evt-1", alert_id="alert-7"):
        ...     logger.info("Sending alert")  # includes event_id and alert_id
    """

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.token: Optional[Token] = None

    def __enter__(self):
        self.token = push_log_context(**self.kwargs)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.token is not None:
            pop_log_context(self.token)
        return False
