"""Common formatting helpers for log lines and CLI output."""

BYTES_PER_KB = 1024.0
SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600


def format_bytes(bytes_value: int | None) -> str:
    """Format bytes in human-readable format.

    Args:
        bytes_value: Number of bytes to format, or None

    Returns:
        Human-readable string (e.g., "1.50 GB") or "N/A" if None

    """
    if bytes_value is None:
        return "N/A"

    value = float(bytes_value)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if value < BYTES_PER_KB:
            return f"{value:.2f} {unit}"
        value /= BYTES_PER_KB
    return f"{value:.2f} PB"


def format_duration(seconds: float) -> str:
    """Format a duration in seconds, minutes or hours."""
    if seconds < SECONDS_PER_MINUTE:
        return f"{seconds:.2f} seconds"
    if seconds < SECONDS_PER_HOUR:
        return f"{seconds / SECONDS_PER_MINUTE:.2f} minutes"
    return f"{seconds / SECONDS_PER_HOUR:.2f} hours"
