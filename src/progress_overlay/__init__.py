"""Task lifecycle view for agent progress events."""

__version__ = "0.1.0"
