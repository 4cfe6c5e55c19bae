"""Polling helper for assertions on work finishing in other threads."""

import time


def wait_until(predicate, timeout=5.0, interval=0.05):
    """Poll ``predicate`` until it is truthy or ``timeout`` seconds pass; return its last value."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
