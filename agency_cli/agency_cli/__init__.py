"""Operator command line for the agency maintenance dashboard."""

__version__ = "0.3.0"
