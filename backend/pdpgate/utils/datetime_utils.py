"""
Datetime utilities
Timezone-aware replacements for the deprecated datetime.utcnow()
"""
from datetime import datetime, timezone


def utc_now() -> datetime:
    """
    Get current UTC time

    Returns:
        datetime: Current UTC time with timezone awareness
    """
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Get current UTC time as ISO format string"""
    return datetime.now(timezone.utc).isoformat()
