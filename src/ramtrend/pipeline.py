import zlib
from dataclasses import dataclass, field
from typing import Any

import structlog

from ramtrend.encoder import encode_record
from ramtrend.metrics import PipelineMetrics
from ramtrend.models import Key, UpdateRecord
from ramtrend.parser import MALFORMED, parse_sample
from ramtrend.refine import RefineStage
from ramtrend.state import InMemoryStateStore
from ramtrend.watermark import WatermarkTracker
from ramtrend.window import DEFAULT_WINDOW_SIZE, CountWindowReducer

logger = structlog.get_logger()

DEGENERATE_FIT = "degenerate_fit"


def partition_for(key: "Key", parallelism: "int") -> "int":
    """
    maps a key to its owning partition. The hash is stable across
    processes so a key keeps its partition over restarts.
    """
    machine, container = key
    return zlib.crc32(f"{machine}|{container}".encode()) % parallelism


@dataclass
class Partition:
    """
    Partition owns the keyed state and the open windows of every
    key routed to it.
    """

    window_size: "int" = DEFAULT_WINDOW_SIZE
    store: "InMemoryStateStore" = field(default_factory=InMemoryStateStore)
    refine: "RefineStage" = field(init=False)
    reducer: "CountWindowReducer" = field(init=False)

    def __post_init__(self) -> "None":
        self.refine = RefineStage(self.store)
        self.reducer = CountWindowReducer(self.window_size)


class Pipeline:
    """
    Pipeline runs raw samples through parsing, per-key refinement,
    the freshest-of-window reduction and output encoding.

    Keys are spread over `parallelism` partitions. Samples are
    processed one at a time in the order they are handed in, so
    per-key delivery order is preserved.
    """

    def __init__(
        self,
        metrics: "PipelineMetrics",
        parallelism: "int" = 1,
        window_size: "int" = DEFAULT_WINDOW_SIZE,
        watermarks: "WatermarkTracker | None" = None,
    ) -> "None":
        if parallelism < 1:
            raise ValueError(f"parallelism must be positive, got {parallelism}")
        self._metrics = metrics
        self._parallelism = parallelism
        self._partitions = [Partition(window_size) for _ in range(parallelism)]
        self._watermarks = watermarks or WatermarkTracker()

    @property
    def watermarks(self) -> "WatermarkTracker":
        return self._watermarks

    def partition(self, key: "Key") -> "Partition":
        return self._partitions[partition_for(key, self._parallelism)]

    def tracked_keys(self) -> "int":
        return sum(len(p.store) for p in self._partitions)

    def process_update(self, payload: "bytes | str | dict[str, Any]") -> "UpdateRecord | None":
        """
        parses and refines a single sample, then feeds the update
        into its key's window. Returns the published record when
        the window closes.
        """
        result = parse_sample(payload)
        if result.sample is None:
            self._metrics.inc_dropped(result.error or MALFORMED)
            return None

        sample = result.sample
        self._metrics.inc_sample()
        self._watermarks.observe(sample.event_time)

        partition = self.partition(sample.key)
        update = partition.refine.process(sample)
        if update is None:
            self._metrics.inc_dropped(DEGENERATE_FIT)
            return None

        self._metrics.inc_update()
        return partition.reducer.add(update)

    def process(self, payload: "bytes | str | dict[str, Any]") -> "tuple[UpdateRecord, bytes] | None":
        """
        runs one raw payload through the whole pipeline. Returns the
        published record with its encoded form, or None when nothing
        is due for output.
        """
        published = self.process_update(payload)
        if published is None:
            return None

        encoded = encode_record(published)
        if encoded is None:
            self._metrics.inc_encode_error()
            return None

        self._metrics.inc_published()
        return published, encoded

    def snapshot(self) -> "dict[str, Any]":
        """
        returns a JSON-serialisable copy of the state and open
        windows of every key.
        """
        state: "list[dict[str, Any]]" = []
        windows: "list[dict[str, Any]]" = []
        for p in self._partitions:
            state.extend(p.store.snapshot())
            windows.extend(p.reducer.snapshot())
        return {"state": state, "windows": windows}

    def restore(self, snapshot: "dict[str, Any]") -> "None":
        """
        replaces all partition contents with the snapshot. Keys are
        routed again, so the snapshot may come from a pipeline with
        a different parallelism.
        """
        state: "list[list[dict[str, Any]]]" = [[] for _ in self._partitions]
        windows: "list[list[dict[str, Any]]]" = [[] for _ in self._partitions]

        for entry in snapshot.get("state", []):
            idx = partition_for((entry["machine"], entry["container"]), self._parallelism)
            state[idx].append(entry)
        for record in snapshot.get("windows", []):
            idx = partition_for(
                (record["machine_id"], record["container_id"]), self._parallelism
            )
            windows[idx].append(record)

        for p, entries, records in zip(self._partitions, state, windows):
            p.store.restore(entries)
            p.reducer.restore(records)

        logger.info(
            "pipeline_restored",
            keys=self.tracked_keys(),
            open_window_records=sum(len(w) for w in windows),
        )
