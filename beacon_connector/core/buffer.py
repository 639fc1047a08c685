"""Buffer chunk exchanged with the host framework.

Each formatted entry is one JSON line holding ``[timestamp_ns, record]``.
"""

import json
from dataclasses import dataclass
from typing import Dict, Any, Iterator, Tuple


def pack_entry(timestamp_ns: int, record: Dict[str, Any]) -> bytes:
    """Serialize one filtered record for buffering."""
    return (json.dumps([timestamp_ns, record], separators=(',', ':')) + '\n').encode('utf-8')


def unpack_entries(data: bytes) -> Iterator[Tuple[Any, Dict[str, Any]]]:
    """Yield ``(timestamp_ns, record)`` pairs from concatenated entries, in order."""
    for line in data.decode('utf-8').splitlines():
        if not line.strip():
            continue
        timestamp_ns, record = json.loads(line)
        yield timestamp_ns, record


@dataclass
class Chunk:
    """A batch of formatted entries sharing one grouping tag."""
    tag: str
    data: bytes = b''

    def append(self, formatted: bytes) -> None:
        # Empty results mark skipped records
        if not formatted:
            return
        self.data += formatted

    def each(self) -> Iterator[Tuple[Any, Dict[str, Any]]]:
        return unpack_entries(self.data)

    def __len__(self) -> int:
        return sum(1 for _ in self.each())
