from dataclasses import dataclass, field
from typing import Dict, Optional, Any, Union

# Tag carrying the configured source name on every point
SOURCE_TAG_KEY = 'beacon-fluent-source'

NANOSECONDS_PER_SECOND = 10 ** 9

ScalarValue = Union[int, float, str, bool]


@dataclass(frozen=True)
class EventTime:
    """
    Event timestamp with sub-second precision, as handed over by the host framework.
    """
    sec: int
    nsec: int = 0

    @classmethod
    def from_float(cls, value: float) -> 'EventTime':
        sec = int(value)
        nsec = int(round((value - sec) * NANOSECONDS_PER_SECOND))
        if nsec >= NANOSECONDS_PER_SECOND:
            sec, nsec = sec + 1, nsec - NANOSECONDS_PER_SECOND
        return cls(sec=sec, nsec=nsec)

    def to_nanoseconds(self) -> int:
        return self.sec * NANOSECONDS_PER_SECOND + self.nsec


def precision_time(time: Union[EventTime, int, float]) -> int:
    """Convert a batch timestamp to integer nanoseconds.

    Plain integers carry no sub-second component.
    """
    if isinstance(time, EventTime):
        return time.to_nanoseconds()
    if isinstance(time, float):
        return EventTime.from_float(time).to_nanoseconds()
    return int(time) * NANOSECONDS_PER_SECOND


@dataclass(frozen=True)
class Classification:
    """
    Result of splitting one record into tags and values.

    timestamp is either the nanosecond batch time or the verbatim time_key value.
    """
    timestamp: Any
    values: Dict[str, ScalarValue] = field(default_factory=dict)
    tags: Dict[str, Union[str, int]] = field(default_factory=dict)

    @property
    def has_values(self) -> bool:
        return bool(self.values)


@dataclass(frozen=True)
class Point:
    """One timestamped observation ready for line protocol encoding."""
    timestamp: Any
    series: str
    tags: Dict[str, Union[str, int]]
    values: Dict[str, ScalarValue]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp,
            'series': self.series,
            'tags': dict(self.tags),
            'values': dict(self.values),
        }


@dataclass
class SequenceState:
    """Counter state for consecutive records sharing one timestamp.

    Owned by a single connector instance, never shared.
    """
    last_timestamp: Optional[Any] = None
    counter: int = 0
