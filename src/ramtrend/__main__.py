import asyncio
import signal

import structlog
from kafka import KafkaConsumer, KafkaProducer
from prometheus_client import start_http_server

from ramtrend.checkpoint import CheckpointStorage
from ramtrend.cli import parse_args
from ramtrend.logging import setup_logging
from ramtrend.metrics import PipelineMetrics
from ramtrend.pipeline import Pipeline
from ramtrend.runner import Runner

logger = structlog.get_logger()


def _parse_listen_address(addr: "str") -> "tuple[str, int]":
    """
    parses listen address in format ':9186' or '0.0.0.0:9186'.
    """
    if addr.startswith(":"):
        return ("0.0.0.0", int(addr[1:]))

    host, port = addr.rsplit(":", 1)
    return (host, int(port))


def main() -> "None":
    config = parse_args()
    setup_logging(config.log_level, config.log_format)

    if config.zookeeper_connect:
        logger.info("zookeeper_connect_ignored", zookeeper=config.zookeeper_connect)

    metrics = PipelineMetrics()
    pipeline = Pipeline(
        metrics,
        parallelism=config.parallelism,
        window_size=config.window_size,
    )

    host, port = _parse_listen_address(config.listen_address)
    start_http_server(port, addr=host)
    logger.info("metrics_server_started", host=host, port=port)

    # offsets are committed by the runner once a checkpoint is durable
    consumer = KafkaConsumer(
        bootstrap_servers=config.bootstrap_server_list,
        group_id=config.group_id,
        enable_auto_commit=False,
    )
    producer = KafkaProducer(bootstrap_servers=config.bootstrap_server_list)

    runner = Runner(
        consumer,
        producer,
        pipeline,
        CheckpointStorage(config.checkpoint_path),
        metrics,
        input_topic=config.topic,
        output_topic=config.output_topic,
        checkpoint_interval_ms=config.checkpoint_interval_ms,
        watermark_interval_ms=config.watermark_interval_ms,
    )

    async def _run() -> "None":
        loop = asyncio.get_running_loop()
        # for SIGINT and SIGTERM, signal the runner
        # to stop gracefully
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, runner.stop)

        try:
            await runner.run()
        finally:
            logger.info("shutting_down")
            await runner.close()
            logger.info("shutdown_complete")

    asyncio.run(_run())


if __name__ == "__main__":
    main()
