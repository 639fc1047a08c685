"""Beacon output connector.

Turns buffered event records into metric points and ships them to the
ingestion endpoint, one payload per chunk.
"""

import logging
from typing import Optional, Dict, Any, Iterable, List, Tuple, Union

from ..schema.models import EventTime, Point, SequenceState, precision_time
from ..transform import FieldClassifier, SequenceTagger, PointBuilder, drop_blank_fields
from ..writer.base import Writer, DeliveryOutcome
from ..writer.delivery import DeliveryClient
from ..writer.line_protocol import LineProtocolEncoder
from .buffer import Chunk, pack_entry
from .config import BeaconConfig
from .logging_config import LoggingConfigurator


class BeaconOutput:
    """Connector between the host buffering framework and the Beacon ingestion API.

    Each instance owns its own sequence state; instances must not be shared
    between workers.
    """

    FORMATTED_RESULT_FOR_INVALID_RECORD = b''

    def __init__(self, config: BeaconConfig, writer: Optional[Writer] = None,
                 sequence_state: Optional[SequenceState] = None):
        """Initialize the connector.

        Args:
            config: Validated connector configuration
            writer: Payload writer, a DeliveryClient for the configured endpoint by default
            sequence_state: Initial sequence state (a fresh one by default)
        """
        self.config = config
        self.logger = logging.getLogger(__name__)

        self.classifier = FieldClassifier(
            time_key=config.time_key,
            auto_tags=config.auto_tags,
            tag_keys=config.tag_keys,
            cast_number_to_float=config.cast_number_to_float,
        )
        self.sequencer = SequenceTagger(config.sequence_tag, sequence_state)
        self.builder = PointBuilder(config.source_name, config.measurement)
        self.encoder = LineProtocolEncoder()
        self.writer = writer if writer is not None else DeliveryClient(config.writer_config())
        self.logging = LoggingConfigurator()

    @property
    def sequence_state(self) -> SequenceState:
        return self.sequencer.state

    def start(self) -> None:
        self.logging.apply(self.config.log_level, self.config.log_file)
        self.logger.info("starting F5 Beacon connector...")
        self.logger.debug(f"Connector configuration: {self.config.to_dict()}")

    def shutdown(self) -> None:
        self.writer.close()
        self.logger.info("F5 Beacon connector stopped")
        self.logging.release()

    def format(self, tag: str, time: Union[EventTime, int, float], record: Dict[str, Any]) -> bytes:
        """Filter one incoming record and serialize it for buffering.

        Returns:
            The buffered entry, or an empty result when the record has no usable fields
        """
        filtered = drop_blank_fields(record)
        if not filtered:
            self.logger.warning(f"skip record '{record}' in '{tag}', because record has no values")
            return self.FORMATTED_RESULT_FOR_INVALID_RECORD
        return pack_entry(precision_time(time), filtered)

    def process(self, tag: str, entries: Iterable[Tuple[Any, Dict[str, Any]]]) -> List[Point]:
        """Build points for a batch of ``(timestamp_ns, record)`` pairs, in order."""
        series = self.builder.series_for(tag)
        points = []
        for timestamp_ns, record in entries:
            classified = self.classifier.classify(record, timestamp_ns)
            # Sequencing runs before the empty check so dropped records still count
            tags = self.sequencer.tag(classified.tags, classified.timestamp)

            if not classified.has_values:
                self.logger.warning(f"skip record '{record}', because one value is required")
                continue

            points.append(self.builder.build(classified.timestamp, series, classified.values, tags))
        return points

    def write(self, chunk: Chunk) -> Optional[DeliveryOutcome]:
        """Convert a chunk to points and deliver them.

        Returns:
            The delivery outcome, or None when the chunk produced no points

        Raises:
            TransportFailure: when the payload could not be sent
        """
        points = self.process(chunk.tag, chunk.each())
        if not points:
            self.logger.debug(f"No points produced for chunk '{chunk.tag}'")
            return None
        return self.write_points(points)

    def write_points(self, points: List[Point]) -> DeliveryOutcome:
        payload = self.serialize(points)
        self.logger.debug(f"Writing {len(points)} points ({len(payload)} bytes)")
        return self.writer.deliver(payload)

    def serialize(self, points: Iterable[Point]) -> str:
        return self.encoder.encode(points)
