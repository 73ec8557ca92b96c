"""SQLite-backed command history storage."""
