"""Brand alert evaluation and notification delivery engine."""

__version__ = "0.1.0"
