"""navstamp: scheduled vault NAV stamping and dashboard data fetch jobs."""

__version__ = "0.1.0"
