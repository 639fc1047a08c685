"""Data structures shared by the transform and writer stages."""

from .models import (
    SOURCE_TAG_KEY, EventTime, Point, Classification, SequenceState, precision_time
)

__all__ = ['SOURCE_TAG_KEY', 'EventTime', 'Point', 'Classification', 'SequenceState', 'precision_time']
