import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import pytest
from prometheus_client import CollectorRegistry

from ramtrend.checkpoint import Checkpoint, CheckpointStorage
from ramtrend.metrics import PipelineMetrics
from ramtrend.pipeline import Pipeline
from ramtrend.runner import Runner

BASE = 1_700_000_000


@dataclass(frozen=True)
class FakeTopicPartition:
    topic: "str"
    partition: "int"


@dataclass(frozen=True)
class FakeMessage:
    offset: "int"
    value: "bytes"


class FakeConsumer:
    """
    A mock consumer that hands out pre-configured batches.
    """

    def __init__(self, batches: "list[dict[Any, list[FakeMessage]]]", events: "list[str]") -> "None":
        self._batches = list(batches)
        self.events = events
        self.on_drained: "Callable[[], None] | None" = None
        self.subscribed: "list[str] | None" = None
        self.listener: "Any" = None
        self.seeks: "list[tuple[Any, int]]" = []
        self.closed = False

    def subscribe(self, topics: "list[str]", listener: "Any" = None) -> "None":
        self.subscribed = topics
        self.listener = listener

    def poll(self, timeout_ms: "int" = 0, max_records: "int | None" = None) -> "dict[Any, list[FakeMessage]]":
        if self._batches:
            return self._batches.pop(0)
        if self.on_drained is not None:
            self.on_drained()
        return {}

    def commit(self) -> "None":
        self.events.append("commit")

    def seek(self, tp: "Any", offset: "int") -> "None":
        self.seeks.append((tp, offset))

    def close(self) -> "None":
        self.closed = True


class FakeProducer:
    def __init__(self, events: "list[str]") -> "None":
        self.events = events
        self.sent: "list[tuple[str, bytes, bytes]]" = []
        self.closed = False

    def send(self, topic: "str", key: "bytes", value: "bytes") -> "None":
        self.sent.append((topic, key, value))

    def flush(self) -> "None":
        self.events.append("flush")

    def close(self) -> "None":
        self.closed = True


class RecordingStorage(CheckpointStorage):
    def __init__(self, path: "Path", events: "list[str]") -> "None":
        super().__init__(path)
        self.events = events

    def save(self, checkpoint: "Checkpoint") -> "None":
        self.events.append("save")
        super().save(checkpoint)


TP0 = FakeTopicPartition("samples", 0)
TP1 = FakeTopicPartition("samples", 1)


def _runner(
    tmp_path: "Path",
    batches: "list[dict[Any, list[FakeMessage]]]",
    registry: "CollectorRegistry",
) -> "tuple[Runner, FakeConsumer, FakeProducer, list[str]]":
    events: "list[str]" = []
    metrics = PipelineMetrics(registry=registry)
    consumer = FakeConsumer(batches, events)
    producer = FakeProducer(events)
    runner = Runner(
        consumer,
        producer,
        Pipeline(metrics),
        RecordingStorage(tmp_path / "cp.json", events),
        metrics,
        input_topic="samples",
        output_topic="ram-usage-data",
        checkpoint_interval_ms=60_000,
        watermark_interval_ms=60_000,
        poll_timeout_ms=1,
    )
    return runner, consumer, producer, events


def _messages(make_event: "Callable[..., bytes]", count: "int", start: "int" = 0) -> "list[FakeMessage]":
    return [
        FakeMessage(offset=i, value=make_event(epoch=BASE + 10 * i, usage=1000 + 3 * i))
        for i in range(start, start + count)
    ]


class TestRunnerProcessing:
    def test_process_batch_sends_published_models(
        self,
        tmp_path: "Path",
        registry: "CollectorRegistry",
        make_event: "Callable[..., bytes]",
    ) -> "None":
        runner, _, producer, _ = _runner(tmp_path, [], registry)

        processed = runner.process_batch({TP0: _messages(make_event, 11)})

        assert processed == 11
        assert runner.offsets == {("samples", 0): 11}
        assert len(producer.sent) == 1
        topic, key, value = producer.sent[0]
        assert topic == "ram-usage-data"
        assert key == b"node-1|web"
        assert json.loads(value)["x"] == BASE + 100

    def test_dropped_messages_still_advance_offsets(
        self, tmp_path: "Path", registry: "CollectorRegistry"
    ) -> "None":
        runner, _, producer, _ = _runner(tmp_path, [], registry)
        runner.process_batch({TP1: [FakeMessage(offset=41, value=b"junk")]})

        assert runner.offsets == {("samples", 1): 42}
        assert producer.sent == []

    def test_publish_watermark(
        self,
        tmp_path: "Path",
        registry: "CollectorRegistry",
        make_event: "Callable[..., bytes]",
    ) -> "None":
        runner, _, _, _ = _runner(tmp_path, [], registry)
        runner.publish_watermark()
        assert registry.get_sample_value("ramtrend_watermark_timestamp_seconds") == 0.0

        runner.process_batch({TP0: _messages(make_event, 3)})
        runner.publish_watermark()
        assert (
            registry.get_sample_value("ramtrend_watermark_timestamp_seconds")
            == BASE + 20
        )


class TestRunnerCheckpoint:
    def test_commit_follows_durable_checkpoint(
        self,
        tmp_path: "Path",
        registry: "CollectorRegistry",
        make_event: "Callable[..., bytes]",
    ) -> "None":
        runner, _, _, events = _runner(tmp_path, [], registry)
        runner.process_batch({TP0: _messages(make_event, 4)})

        runner.checkpoint()

        assert events == ["flush", "save", "commit"]
        saved = CheckpointStorage(tmp_path / "cp.json").load()
        assert saved is not None
        assert saved.offsets == {("samples", 0): 4}
        assert registry.get_sample_value("ramtrend_tracked_keys") == 1.0

    def test_no_commit_before_any_message(
        self, tmp_path: "Path", registry: "CollectorRegistry"
    ) -> "None":
        runner, _, _, events = _runner(tmp_path, [], registry)
        runner.checkpoint()
        assert events == ["flush", "save"]

    def test_restore_seeks_assigned_partitions(
        self,
        tmp_path: "Path",
        registry: "CollectorRegistry",
        make_event: "Callable[..., bytes]",
    ) -> "None":
        first, _, _, _ = _runner(tmp_path, [], registry)
        first.process_batch({TP0: _messages(make_event, 5)})
        first.checkpoint()

        runner, consumer, _, _ = _runner(tmp_path, [], CollectorRegistry())
        assert runner.restore() is True
        runner.seek_assigned([TP0, TP1])

        assert consumer.seeks == [(TP0, 5)]

    def test_restore_without_checkpoint(
        self, tmp_path: "Path", registry: "CollectorRegistry"
    ) -> "None":
        runner, _, _, _ = _runner(tmp_path, [], registry)
        assert runner.restore() is False
        assert runner.offsets == {}


class TestRunnerLoop:
    @pytest.mark.asyncio
    async def test_run_until_stopped(
        self,
        tmp_path: "Path",
        registry: "CollectorRegistry",
        make_event: "Callable[..., bytes]",
    ) -> "None":
        batches = [
            {TP0: _messages(make_event, 6)},
            {TP0: _messages(make_event, 5, start=6)},
        ]
        runner, consumer, producer, events = _runner(tmp_path, batches, registry)
        consumer.on_drained = runner.stop

        await runner.run()

        assert consumer.subscribed == ["samples"]
        assert len(producer.sent) == 1
        # a clean stop takes a final checkpoint
        assert events == ["flush", "save", "commit"]
        saved = CheckpointStorage(tmp_path / "cp.json").load()
        assert saved is not None
        assert saved.offsets == {("samples", 0): 11}

        # partitions assigned after a restart resume at the checkpoint
        consumer.listener.on_partitions_assigned([TP0])
        assert consumer.seeks == [(TP0, 11)]

        await runner.close()
        assert consumer.closed
        assert producer.closed

    @pytest.mark.asyncio
    async def test_resume_after_restart_matches_unbroken_run(
        self,
        tmp_path: "Path",
        make_event: "Callable[..., bytes]",
    ) -> "None":
        messages = _messages(make_event, 21)

        unbroken, consumer, unbroken_out, _ = _runner(
            tmp_path / "a", [{TP0: messages}], CollectorRegistry()
        )
        consumer.on_drained = unbroken.stop
        await unbroken.run()

        first, consumer, first_out, _ = _runner(
            tmp_path / "b", [{TP0: messages[:8]}], CollectorRegistry()
        )
        consumer.on_drained = first.stop
        await first.run()

        second, consumer, second_out, _ = _runner(
            tmp_path / "b", [{TP0: messages[8:]}], CollectorRegistry()
        )
        consumer.on_drained = second.stop
        await second.run()

        assert first_out.sent + second_out.sent == unbroken_out.sent
        assert len(unbroken_out.sent) == 2
