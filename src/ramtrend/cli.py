import argparse

from ramtrend.config import Config


def _positive_int(value: "str") -> "int":
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {value}")
    return number


def parse_args(argv: "list[str] | None" = None) -> "Config":
    config = Config.from_env()

    parser = argparse.ArgumentParser(
        prog="ramtrend",
        description="Online per-container memory usage regression over Kafka",
    )
    parser.add_argument("--topic", required=True, help="Input topic name")
    parser.add_argument(
        "--output.topic",
        dest="output_topic",
        default=config.output_topic,
        help=f"Output topic name (default: {config.output_topic})",
    )
    parser.add_argument(
        "--bootstrap.servers",
        dest="bootstrap_servers",
        default=config.bootstrap_servers,
        help="Comma separated Kafka brokers (default: $RAMTREND_BOOTSTRAP_SERVERS or localhost:9092)",
    )
    parser.add_argument(
        "--group.id",
        dest="group_id",
        default=config.group_id,
        help="Consumer group id (default: $RAMTREND_GROUP_ID or myGroup)",
    )
    parser.add_argument(
        "--zookeeper.connect",
        dest="zookeeper_connect",
        default=config.zookeeper_connect,
        help="ZooKeeper quorum, accepted for compatibility and otherwise unused",
    )
    parser.add_argument(
        "--watermark.interval",
        dest="watermark_interval_ms",
        type=_positive_int,
        default=config.watermark_interval_ms,
        help="Watermark interval in milliseconds (default: 1000)",
    )
    parser.add_argument(
        "--checkpoint.interval",
        dest="checkpoint_interval_ms",
        type=_positive_int,
        default=config.checkpoint_interval_ms,
        help="Checkpoint interval in milliseconds (default: 5000)",
    )
    parser.add_argument(
        "--checkpoint.path",
        dest="checkpoint_path",
        default=config.checkpoint_path,
        help="Checkpoint file (default: ramtrend-checkpoint.json)",
    )
    parser.add_argument(
        "--parallelism",
        type=_positive_int,
        default=config.parallelism,
        help="Number of key partitions (default: 1)",
    )
    parser.add_argument(
        "--window.size",
        dest="window_size",
        type=_positive_int,
        default=config.window_size,
        help="Updates per key reduced to one published model (default: 10)",
    )
    parser.add_argument(
        "--web.listen-address",
        dest="listen_address",
        default=config.listen_address,
        help="Address to serve metrics on (default: :9186)",
    )
    parser.add_argument(
        "--log.level",
        dest="log_level",
        default=config.log_level,
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)",
    )
    parser.add_argument(
        "--log.format",
        dest="log_format",
        default=config.log_format,
        choices=["console", "json"],
        help="Log output format (default: console)",
    )

    args = parser.parse_args(argv)
    for name, value in vars(args).items():
        setattr(config, name, value)
    return config
