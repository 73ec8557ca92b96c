"""Query filters and ranking algorithms."""
