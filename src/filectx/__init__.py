"""filectx - file and model context tracking for coding agents."""

__version__ = "0.1.0"
