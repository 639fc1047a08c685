"""
Utility functions for value inspection and text rendering.
"""
from typing import Any


def to_text(value: Any) -> str:
    """
    Render a record value as text.

    Booleans use the lowercase wire spelling; None renders as an empty string.

    Args:
        value: Any record value

    Returns:
        The text form of the value
    """
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def is_blank(value: Any) -> bool:
    """Check whether a record value is missing or has an empty text form."""
    return value is None or to_text(value) == ''


def is_composite(value: Any) -> bool:
    """Check whether a value is a list/map-like structure that cannot be encoded."""
    return isinstance(value, (list, tuple, set, dict))
