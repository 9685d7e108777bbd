"""Kaspa All-in-One installer engine."""

__version__ = "0.10.0"
