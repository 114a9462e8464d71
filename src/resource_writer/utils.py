"""
Utility functions for bulk writes.

Includes retry delay calculation and string helpers that limit values by
character count or by UTF-8 encoded size.
"""

import random
from typing import Optional


def calculate_retry_delay(
    attempt: int, base_delay: float = 0.1, max_delay: float = 30.0, jitter: bool = True
) -> float:
    """
    Calculate retry delay with exponential backoff and optional jitter.

    Args:
        attempt: Current attempt number (0-based)
        base_delay: Base delay in seconds
        max_delay: Maximum delay in seconds
        jitter: Add random jitter to prevent thundering herd

    Returns:
        Delay in seconds
    """
    # Exponential backoff: base_delay * 2^attempt
    delay = min(base_delay * (2**attempt), max_delay)

    if jitter:
        # Add ±25% jitter
        jitter_range = delay * 0.25
        delay += random.uniform(-jitter_range, jitter_range)

    return max(0.0, delay)


def utf8_len(value: Optional[str]) -> int:
    """Size of ``value`` in bytes when encoded as UTF-8."""
    if value is None:
        return 0
    return len(value.encode("utf-8"))


def truncate(value: Optional[str], max_length: int) -> Optional[str]:
    """Cut ``value`` to at most ``max_length`` characters."""
    if value is None or len(value) <= max_length:
        return value
    return value[:max_length]


def limit_utf8(value: Optional[str], max_bytes: int) -> Optional[str]:
    """Cut ``value`` so its UTF-8 encoding is at most ``max_bytes`` long.

    Never splits a multi-byte character.
    """
    if value is None:
        return None
    encoded = value.encode("utf-8")
    if len(encoded) <= max_bytes:
        return value
    return encoded[:max_bytes].decode("utf-8", errors="ignore")


def check_length(value: Optional[str], max_length: int) -> bool:
    return value is None or len(value) <= max_length


def check_utf8(value: Optional[str], max_bytes: int) -> bool:
    return value is None or utf8_len(value) <= max_bytes
