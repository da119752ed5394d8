"""Regulation approval tracker: lifecycle transitions, deadline scans and SLA metrics."""

__version__ = "0.1.0"
