"""
Line protocol encoding for Beacon metric points.

Format: measurement,tag1=value1,tag2=value2 field1=value1,field2=value2 timestamp
"""

import logging
from decimal import Decimal
from typing import Dict, Any, Iterable, List, Optional

from ..schema.models import Point
from ..utils import to_text

LOG = logging.getLogger(__name__)

# Characters escaped with a backslash, per token kind. Order matters for field values:
# backslashes are escaped before quotes.
ESCAPES = {
    'measurement': (',', ' '),
    'tag_key': ('=', ' ', ','),
    'tag_value': ('=', ' ', ','),
    'field_key': ('=', ' ', ',', '"'),
    'field_value': ('\\', '"'),
}

# Line breaks would split a point across lines, in every token kind
LINE_BREAKS = (('\n', '\\n'), ('\r', '\\r'))


def escape(text: str, kind: str) -> str:
    """Escape reserved characters in a line protocol token."""
    for char in ESCAPES[kind]:
        text = text.replace(char, '\\' + char)
    for char, replacement in LINE_BREAKS:
        text = text.replace(char, replacement)
    return text


def format_float(value: float) -> str:
    """Render a float in decimal notation."""
    text = repr(value)
    if 'e' in text or 'E' in text:
        text = format(Decimal(text), 'f')
        if '.' not in text:
            text += '.0'
    return text


def format_field_value(value: Any) -> str:
    """Render a field value with its line protocol type marker."""
    if isinstance(value, str):
        return f'"{escape(value, "field_value")}"'
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, int):
        return f"{value}i"
    if isinstance(value, float):
        return format_float(value)
    return f'"{escape(to_text(value), "field_value")}"'


class LineProtocolEncoder:
    """Serializes Points into newline-joined line protocol text."""

    def encode_tags(self, tags: Dict[str, Any]) -> Optional[str]:
        parts = []
        for key, value in sorted(tags.items()):
            escaped_key = escape(str(key), 'tag_key')
            escaped_value = escape(to_text(value), 'tag_value')
            # Tags with an empty key or value are not representable
            if escaped_key == '' or escaped_value == '':
                continue
            parts.append(f"{escaped_key}={escaped_value}")
        return ','.join(parts) if parts else None

    def encode_fields(self, values: Dict[str, Any]) -> str:
        return ','.join(
            f"{escape(str(key), 'field_key')}={format_field_value(value)}"
            for key, value in sorted(values.items())
        )

    def encode_point(self, point: Point) -> str:
        line = escape(point.series, 'measurement')
        tags = self.encode_tags(point.tags)
        if tags:
            line += ',' + tags
        # Keep a trailing backslash from escaping the separator
        if line.endswith('\\'):
            line += ' '
        line += ' ' + self.encode_fields(point.values)
        if point.timestamp is not None:
            line += f" {point.timestamp}"
        return line

    def encode(self, points: Iterable[Point]) -> str:
        """
        Render Points as one payload.

        Args:
            points: Points in production order

        Returns:
            One line per point joined by newlines, without a trailing newline
        """
        lines: List[str] = [self.encode_point(point) for point in points]
        LOG.debug(f"Encoded {len(lines)} points to line protocol")
        return '\n'.join(lines)
