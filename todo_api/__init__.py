"""Task management API: authentication plus per-user task storage."""

__version__ = "1.0.0"
