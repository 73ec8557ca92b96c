"""Shell command history with prefix and context-aware lookup."""

__version__ = "0.1.0"
