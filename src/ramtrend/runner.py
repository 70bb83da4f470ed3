import asyncio
import time
from typing import Any, Mapping, Sequence

import structlog
from kafka import ConsumerRebalanceListener

from ramtrend.checkpoint import Checkpoint, CheckpointStorage, Offsets
from ramtrend.encoder import record_key
from ramtrend.metrics import PipelineMetrics
from ramtrend.pipeline import Pipeline

logger = structlog.get_logger()


class _SeekOnAssign(ConsumerRebalanceListener):
    """
    moves newly assigned partitions to the offsets that match the
    restored pipeline state.
    """

    def __init__(self, runner: "Runner") -> "None":
        self._runner = runner

    def on_partitions_revoked(self, revoked: "Any") -> "None":
        logger.info("partitions_revoked", partitions=sorted(str(tp) for tp in revoked))

    def on_partitions_assigned(self, assigned: "Any") -> "None":
        self._runner.seek_assigned(assigned)


class Runner:
    """
    Runner hosts the pipeline on a Kafka consumer/producer pair.
    It polls samples, runs them through the pipeline in delivery
    order and produces the published models. Every checkpoint
    interval the pipeline state is saved together with the consumed
    offsets; every watermark interval the event time watermark is
    published. Runs until stop() is called.
    """

    def __init__(
        self,
        consumer: "Any",
        producer: "Any",
        pipeline: "Pipeline",
        storage: "CheckpointStorage",
        metrics: "PipelineMetrics",
        input_topic: "str",
        output_topic: "str",
        checkpoint_interval_ms: "int" = 5000,
        watermark_interval_ms: "int" = 1000,
        poll_timeout_ms: "int" = 500,
        max_poll_records: "int" = 500,
    ) -> "None":
        self._consumer = consumer
        self._producer = producer
        self._pipeline = pipeline
        self._storage = storage
        self._metrics = metrics
        self._input_topic = input_topic
        self._output_topic = output_topic
        self._checkpoint_interval = checkpoint_interval_ms / 1000.0
        self._watermark_interval = watermark_interval_ms / 1000.0
        self._poll_timeout_ms = poll_timeout_ms
        self._max_poll_records = max_poll_records
        self._offsets: "Offsets" = {}
        self._stop_event: "asyncio.Event" = asyncio.Event()

    @property
    def offsets(self) -> "Offsets":
        return dict(self._offsets)

    def stop(self) -> "None":
        """
        signals the runner loop to stop after the current batch.
        """
        self._stop_event.set()

    def restore(self) -> "bool":
        """
        loads the latest checkpoint into the pipeline. Returns False
        when starting without one.
        """
        checkpoint = self._storage.load()
        if checkpoint is None:
            logger.info("checkpoint_not_found", path=str(self._storage.path))
            return False

        self._pipeline.restore(checkpoint.pipeline)
        self._offsets = dict(checkpoint.offsets)
        logger.info(
            "checkpoint_restored",
            path=str(self._storage.path),
            created_at=checkpoint.created_at,
            partitions=len(self._offsets),
        )
        return True

    def seek_assigned(self, assigned: "Sequence[Any]") -> "None":
        for tp in assigned:
            offset = self._offsets.get((tp.topic, tp.partition))
            if offset is None:
                continue
            self._consumer.seek(tp, offset)
            logger.info(
                "partition_seek", topic=tp.topic, partition=tp.partition, offset=offset
            )

    def process_batch(self, batch: "Mapping[Any, Sequence[Any]]") -> "int":
        """
        runs a polled batch through the pipeline and sends what it
        publishes. Returns the number of messages processed.
        """
        processed = 0
        for tp, messages in batch.items():
            for message in messages:
                out = self._pipeline.process(message.value)
                if out is not None:
                    record, payload = out
                    self._producer.send(
                        self._output_topic, key=record_key(record), value=payload
                    )
                self._offsets[(tp.topic, tp.partition)] = message.offset + 1
                processed += 1
        return processed

    def checkpoint(self) -> "None":
        """
        saves the pipeline state with the offsets it reflects, then
        commits the consumer group offsets. Failures propagate.
        """
        started = time.monotonic()
        self._producer.flush()

        checkpoint = Checkpoint(
            pipeline=self._pipeline.snapshot(),
            offsets=dict(self._offsets),
        )
        self._storage.save(checkpoint)

        # commit only once the matching state is durable
        if self._offsets:
            self._consumer.commit()

        duration = time.monotonic() - started
        tracked = self._pipeline.tracked_keys()
        self._metrics.observe_checkpoint(duration, checkpoint.created_at, tracked)
        logger.debug("checkpoint_complete", duration=duration, keys=tracked)

    def publish_watermark(self) -> "None":
        watermark = self._pipeline.watermarks.current()
        if watermark is None:
            return
        self._metrics.set_watermark(watermark)
        logger.debug("watermark", watermark=watermark)

    async def run(self) -> "None":
        """
        runs the main consume loop. Takes a final checkpoint on a
        clean stop.
        """
        self.restore()
        self._consumer.subscribe([self._input_topic], listener=_SeekOnAssign(self))
        logger.info(
            "runner_started", input_topic=self._input_topic, output_topic=self._output_topic
        )

        last_checkpoint = last_watermark = time.monotonic()
        while not self._stop_event.is_set():
            batch = await asyncio.to_thread(
                self._consumer.poll,
                timeout_ms=self._poll_timeout_ms,
                max_records=self._max_poll_records,
            )
            if batch:
                processed = self.process_batch(batch)
                logger.debug("batch_processed", messages=processed)

            now = time.monotonic()
            if now - last_watermark >= self._watermark_interval:
                self.publish_watermark()
                last_watermark = now
            if now - last_checkpoint >= self._checkpoint_interval:
                self.checkpoint()
                last_checkpoint = now

        self.checkpoint()
        logger.info("runner_stopped")

    async def close(self) -> "None":
        """
        closes the consumer and flushes and closes the producer.
        """
        await asyncio.to_thread(self._producer.close)
        await asyncio.to_thread(self._consumer.close)
