"""Sequence tagging for records that share a timestamp."""

from typing import Any, Optional

from ..schema.models import SequenceState


class SequenceTagger:
    """
    Numbers consecutive records with an identical timestamp.

    The counter restarts at 0 whenever the timestamp changes. Calls must be made
    in record arrival order, within and across batches.
    """

    def __init__(self, tag_name: Optional[str] = None, state: Optional[SequenceState] = None):
        self.tag_name = tag_name
        self.state = state if state is not None else SequenceState()

    @property
    def enabled(self) -> bool:
        return bool(self.tag_name)

    def next_sequence(self, timestamp: Any) -> int:
        state = self.state
        if state.last_timestamp is not None and state.last_timestamp == timestamp:
            state.counter += 1
        else:
            state.counter = 0
        state.last_timestamp = timestamp
        return state.counter

    def tag(self, tags: dict, timestamp: Any) -> dict:
        """Return a copy of tags with the sequence value added, or tags unchanged when disabled."""
        if not self.enabled:
            return tags
        tagged = dict(tags)
        tagged[self.tag_name] = self.next_sequence(timestamp)
        return tagged
