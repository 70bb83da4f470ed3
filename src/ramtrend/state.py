from typing import Any, Iterator, Protocol

from ramtrend.models import Key
from ramtrend.regression import Accumulator


class KeyedStateStore(Protocol):
    """
    KeyedStateStore stands as the common protocol for per-key
    accumulator storage.

    A store holds exactly one accumulator per key. Its contents are
    made durable through snapshot(), taken at checkpoint time, and
    brought back with restore() on recovery.
    """

    def get_or_create(self, key: "Key") -> "Accumulator": ...

    def put(self, key: "Key", acc: "Accumulator") -> "None": ...

    def snapshot(self) -> "list[dict[str, Any]]": ...

    def restore(self, entries: "list[dict[str, Any]]") -> "None": ...

    def keys(self) -> "Iterator[Key]": ...

    def __len__(self) -> "int": ...


class InMemoryStateStore:
    """
    InMemoryStateStore keeps accumulators in a dict owned by a
    single partition. It is not thread-safe: every key is owned
    by exactly one partition, which processes it sequentially.
    """

    def __init__(self) -> "None":
        self._state: "dict[Key, Accumulator]" = {}

    def get_or_create(self, key: "Key") -> "Accumulator":
        acc = self._state.get(key)
        if acc is None:
            acc = Accumulator()
            self._state[key] = acc
        return acc

    def put(self, key: "Key", acc: "Accumulator") -> "None":
        if self._state.get(key) is acc:
            return
        # an instance owned by another key must never be shared
        for other_key, other in self._state.items():
            if other is acc:
                raise ValueError(f"accumulator already owned by {other_key}")
        self._state[key] = acc

    def get(self, key: "Key") -> "Accumulator | None":
        return self._state.get(key)

    def snapshot(self) -> "list[dict[str, Any]]":
        """
        returns a detached, JSON-serialisable copy of every entry.
        """
        return [
            {"machine": machine, "container": container, "acc": acc.to_dict()}
            for (machine, container), acc in self._state.items()
        ]

    def restore(self, entries: "list[dict[str, Any]]") -> "None":
        """
        replaces the store contents with the given snapshot entries.
        """
        self._state = {
            (entry["machine"], entry["container"]): Accumulator.from_dict(entry["acc"])
            for entry in entries
        }

    def keys(self) -> "Iterator[Key]":
        return iter(list(self._state))

    def __len__(self) -> "int":
        return len(self._state)
