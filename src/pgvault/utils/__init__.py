"""Utility functions for backup operations."""

from .common import format_bytes, format_duration

__all__ = ["format_bytes", "format_duration"]
