"""Utility functions for the ENote backend."""
import datetime
from typing import Optional

# Wire format for every timestamp exchanged with the UI
DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def now() -> datetime.datetime:
    """Current local time as a naive datetime, truncated to whole seconds.

    Timestamps travel to the UI with second precision, so storing anything
    finer would make a freshly written row differ from its own re-read.
    """
    return datetime.datetime.now().replace(microsecond=0)


def format_datetime(value: Optional[datetime.datetime]) -> Optional[str]:
    """Format a datetime as ``YYYY-MM-DD HH:MM:SS`` (None stays None)."""
    if value is None:
        return None
    return value.strftime(DATETIME_FORMAT)


def parse_datetime(value: Optional[str]) -> Optional[datetime.datetime]:
    """Parse a ``YYYY-MM-DD HH:MM:SS`` string.

    Empty strings and None yield None.

    Raises:
        ValueError: If the string does not match the wire format.
    """
    if not value:
        return None
    return datetime.datetime.strptime(value, DATETIME_FORMAT)


def escape_like_pattern(value: str) -> str:
    """Escape SQL LIKE wildcards to treat them as literals.

    Prevents SQL LIKE pattern injection where user input containing
    '%' or '_' could match unintended patterns.

    Args:
        value: User input string that may contain LIKE wildcards

    Returns:
        String with '%', '_', and '\\' escaped for safe use in LIKE clauses

    Example:
        >>> escape_like_pattern("100% complete")
        '100\\% complete'
        >>> escape_like_pattern("file_name")
        'file\\_name'
    """
    escape_table = str.maketrans(
        {
            "\\": "\\\\",  # Escape backslash first
            "%": "\\%",
            "_": "\\_",
        }
    )
    return value.translate(escape_table)
