"""Per-record transformation stages: classification, sequencing and point assembly."""

from .classifier import FieldClassifier, drop_blank_fields
from .sequence import SequenceTagger
from .point_builder import PointBuilder

__all__ = ['FieldClassifier', 'drop_blank_fields', 'SequenceTagger', 'PointBuilder']
