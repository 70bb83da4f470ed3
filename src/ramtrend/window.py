from dataclasses import asdict
from typing import Any

from ramtrend.models import Key, UpdateRecord

# number of updates per key reduced to a single published model
DEFAULT_WINDOW_SIZE = 10


def freshest(records: "list[UpdateRecord]") -> "UpdateRecord":
    """
    returns the record with the largest x. On ties the earliest
    record wins.
    """
    best = records[0]
    for record in records[1:]:
        if record.x > best.x:
            best = record
    return best


class CountWindowReducer:
    """
    CountWindowReducer buffers update records per key in tumbling
    count windows. Once a key's window holds `size` records, the
    freshest one is emitted and the window starts over. Partial
    windows are never flushed.
    """

    def __init__(self, size: "int" = DEFAULT_WINDOW_SIZE) -> "None":
        if size < 1:
            raise ValueError(f"window size must be positive, got {size}")
        self._size = size
        self._buffers: "dict[Key, list[UpdateRecord]]" = {}

    @property
    def size(self) -> "int":
        return self._size

    def add(self, record: "UpdateRecord") -> "UpdateRecord | None":
        buffer = self._buffers.setdefault(record.key, [])
        buffer.append(record)
        if len(buffer) < self._size:
            return None

        del self._buffers[record.key]
        return freshest(buffer)

    def pending(self, key: "Key") -> "int":
        """
        returns how many records the key's open window holds.
        """
        return len(self._buffers.get(key, ()))

    def snapshot(self) -> "list[dict[str, Any]]":
        return [asdict(r) for buffer in self._buffers.values() for r in buffer]

    def restore(self, records: "list[dict[str, Any]]") -> "None":
        """
        replaces the open windows, keeping the snapshot's arrival order.
        """
        self._buffers = {}
        for data in records:
            record = UpdateRecord(**data)
            self._buffers.setdefault(record.key, []).append(record)
