"""Alert dispatch: match a committed job or profile against instant alerts and notify owners."""

from .dispatcher import AlertDispatcher
from .models import DispatchFailure, DispatchResult

__all__ = [
    "AlertDispatcher",
    "DispatchResult",
    "DispatchFailure",
]
