"""Concurrent SQLite fan-out load harness with cross-connection status aggregation."""

__version__ = "0.1.0"

__all__ = ["__version__"]
