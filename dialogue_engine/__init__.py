"""Interview dialogue engine."""

__version__ = "0.1.0"
