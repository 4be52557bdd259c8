"""
Byte quantities and formatting.

Handles conversion of raw counter values into safe non-negative integers.
"""

import math

KIB = 1024
MIB = 1024 * KIB
GIB = 1024 * MIB


def clamp_bytes(value) -> int:
    """Convert a raw counter value to a non-negative integer.
    
    Malformed values (None, non-numeric strings, NaN, infinity) and negative
    values resolve to 0 instead of raising.
    
    Args:
        value: Raw byte count from a collaborator
        
    Returns:
        Non-negative byte count
    """
    if value is None or isinstance(value, bool):
        return 0
    try:
        if isinstance(value, float) and not math.isfinite(value):
            return 0
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(0, number)


def format_bytes(n: float) -> str:
    """Format a byte count with 1024-based units."""
    if n >= GIB:
        return f"{n / GIB:.1f} GB"
    if n >= MIB:
        return f"{n / MIB:.1f} MB"
    if n >= KIB:
        return f"{n / KIB:.1f} KB"
    return f"{int(n)} B"
