"""
Field classification for incoming event records.

Splits a record into tag fields and value fields according to the connector
configuration and extracts the per-record timestamp override.
"""

import logging
import math
from typing import Dict, Any, Iterable, Optional

from ..schema.models import Classification
from ..utils import to_text, is_blank, is_composite

LOG = logging.getLogger(__name__)


def drop_blank_fields(record: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of the record without None or empty-text values."""
    return {key: value for key, value in record.items() if not is_blank(value)}


class FieldClassifier:
    """
    Classifies record fields as tags or values.

    A field becomes a tag when auto-tagging is enabled and its value is a string,
    or when its key is listed in tag_keys. Everything else is a value.
    """

    def __init__(self, time_key: str = 'time', auto_tags: bool = False,
                 tag_keys: Optional[Iterable[str]] = None, cast_number_to_float: bool = False):
        self.time_key = time_key
        self.auto_tags = auto_tags
        self.tag_keys = frozenset(tag_keys or ())
        self.cast_number_to_float = cast_number_to_float

    @property
    def tagging_enabled(self) -> bool:
        return self.auto_tags or bool(self.tag_keys)

    def classify(self, record: Dict[str, Any], timestamp: Any) -> Classification:
        """
        Classify one record.

        Args:
            record: Field name -> value mapping (left untouched)
            timestamp: Nanosecond batch timestamp used unless time_key is present

        Returns:
            Classification with the effective timestamp, values and tags. The
            values may be empty; callers drop such records.
        """
        fields = drop_blank_fields(record)

        # time_key values are taken as-is, they are not rescaled to nanoseconds
        override = fields.pop(self.time_key, None) if self.time_key else None
        if override is not None and override is not False:
            timestamp = override

        if self.tagging_enabled:
            values, tags = self._split(fields)
        else:
            values, tags = fields, {}

        values = self._drop_unencodable(values)

        if self.cast_number_to_float:
            values = {
                key: float(value) if isinstance(value, int) and not isinstance(value, bool) else value
                for key, value in values.items()
            }

        return Classification(timestamp=timestamp, values=values, tags=tags)

    def _split(self, fields: Dict[str, Any]):
        values: Dict[str, Any] = {}
        tags: Dict[str, Any] = {}
        for key, value in fields.items():
            if (self.auto_tags and isinstance(value, str)) or key in self.tag_keys:
                normalized = to_text(value).strip()
                # Blank tags are dropped, they do not fall back to values
                if normalized != '':
                    tags[key] = normalized
            else:
                values[key] = value
        return values, tags

    def _drop_unencodable(self, values: Dict[str, Any]) -> Dict[str, Any]:
        kept = {}
        for key, value in values.items():
            if is_composite(value):
                LOG.warning(f"array/hash field '{key}' discarded; consider using a filter to map it")
                continue
            if isinstance(value, float) and not math.isfinite(value):
                LOG.warning(f"non-finite field '{key}'={value} discarded")
                continue
            kept[key] = value
        return kept
