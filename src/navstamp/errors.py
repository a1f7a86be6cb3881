"""Failure taxonomy for the NAV stamp and the daily fetch jobs."""
from __future__ import annotations


class NavStampError(Exception):
    """Base class for every failure a run can report."""


class SourceUnavailable(NavStampError):
    """An upstream price/valuation source could not be read (network, HTTP, bad payload)."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


class InvalidRecord(NavStampError):
    """A computed record failed validation (non-positive, non-finite or missing share price)."""


class ImplausibleValue(NavStampError):
    """A value passed validation but looks anomalous against history."""


class PersistenceFailure(NavStampError):
    """The history file could not be read, written or renamed."""


class RunTimeout(NavStampError):
    """The run exceeded its overall wall-clock budget."""


class CalibrationMissing(NavStampError):
    """No calibration entry covers the requested date."""
