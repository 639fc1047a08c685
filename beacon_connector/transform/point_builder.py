"""Point assembly from classified record fields."""

import logging
from typing import Dict, Any, Optional

from ..schema.models import Point, SOURCE_TAG_KEY

LOG = logging.getLogger(__name__)


class PointBuilder:
    """
    Builds Points and stamps each with the source identity tag.

    The source tag is applied after all other tags so record content can never
    replace it.
    """

    def __init__(self, source_name: str, measurement: Optional[str] = None):
        self.source_name = source_name
        self.measurement = measurement

    def series_for(self, tag: str) -> str:
        """Static measurement name if configured, otherwise the batch tag."""
        return self.measurement or tag

    def build(self, timestamp: Any, series: str, values: Dict[str, Any],
              tags: Dict[str, Any]) -> Point:
        if not values:
            raise ValueError("a point requires at least one value")

        point_tags = dict(tags)
        if SOURCE_TAG_KEY in point_tags and point_tags[SOURCE_TAG_KEY] != self.source_name:
            LOG.debug(f"record tag '{SOURCE_TAG_KEY}' replaced by configured source name")
        point_tags[SOURCE_TAG_KEY] = self.source_name

        return Point(
            timestamp=timestamp,
            series=series,
            tags=point_tags,
            values=dict(values),
        )
