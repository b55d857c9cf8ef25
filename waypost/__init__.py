"""waypost - file-backed plan execution and governance engine."""

__version__ = "0.4.0"
