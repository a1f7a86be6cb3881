"""NAV (net asset value) history tracking.

This package keeps the official daily share-price series:
- one record per exchange-local calendar day (latest write wins)
- a versioned calibration book for splicing in the secondary source
- atomic read-modify-write of the JSON history the dashboards read

The goal is a series that is never corrupted by a bad upstream read or an
interrupted run.
"""
