"""Rotating Savings Pool API."""

__version__ = "0.1.0"
