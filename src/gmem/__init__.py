"""gmem: JSON-file backed personal memory store."""

__version__ = "0.3.0"
