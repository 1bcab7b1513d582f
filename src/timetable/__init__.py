"""Recurring schedule engine and resilient status synchronization."""

__version__ = "0.1.0"
