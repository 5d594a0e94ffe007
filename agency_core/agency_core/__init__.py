"""Core maintenance-hours engine for the agency dashboard."""

__version__ = "0.3.0"
