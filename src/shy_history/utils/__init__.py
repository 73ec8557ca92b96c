"""Formatting and system helpers."""
