"""
Utility functions for chime.

chat.db stores message dates as nanoseconds since 2001-01-01 00:00:00 UTC
(Apple's reference date). Adding a fixed nanosecond offset gives Unix time.
"""

from datetime import datetime, timezone
from typing import Optional

# Seconds between the Unix epoch and Apple's 2001-01-01 epoch
APPLE_EPOCH_OFFSET = 978307200
APPLE_EPOCH_OFFSET_NS = APPLE_EPOCH_OFFSET * 1_000_000_000


def apple_ns_to_datetime(nanoseconds: Optional[int]) -> Optional[datetime]:
    """
    Convert an Apple nanosecond timestamp to an aware UTC datetime.

    Args:
        nanoseconds: Nanoseconds since 2001-01-01 UTC. 0 and None mean unset.

    Returns:
        UTC datetime, or None if unset.

    Raises:
        TypeError: If the value is not an integer.
        ValueError: If the value is out of range for datetime.
    """
    if nanoseconds is None:
        return None
    if isinstance(nanoseconds, bool) or not isinstance(nanoseconds, int):
        raise TypeError(f"expected integer timestamp, got {type(nanoseconds).__name__}")
    if nanoseconds <= 0:
        return None

    unix_ns = nanoseconds + APPLE_EPOCH_OFFSET_NS
    try:
        dt = datetime.fromtimestamp(unix_ns // 1_000_000_000, tz=timezone.utc)
    except (OverflowError, OSError) as e:
        raise ValueError(f"timestamp out of range: {nanoseconds}") from e
    return dt.replace(microsecond=(unix_ns % 1_000_000_000) // 1000)
