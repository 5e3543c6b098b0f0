"""Focus timer engine package."""

__version__ = "1.0.0"
