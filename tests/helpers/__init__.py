"""Test helper utilities for job board core tests."""

from .factories import (
    RecordingGateway,
    make_account,
    make_alert,
    make_job,
    make_principal,
    make_profile,
)
from .polling import wait_until

__all__ = [
    "RecordingGateway",
    "make_account",
    "make_alert",
    "make_job",
    "make_principal",
    "make_profile",
    "wait_until",
]
