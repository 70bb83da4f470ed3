import os
from dataclasses import dataclass


@dataclass
class Config:
    # input topic holding cAdvisor samples
    topic: "str" = ""
    output_topic: "str" = "ram-usage-data"
    # comma separated host:port list
    bootstrap_servers: "str" = "localhost:9092"
    group_id: "str" = "myGroup"
    # kept for older deployments, the Kafka client talks to brokers only
    zookeeper_connect: "str" = ""

    watermark_interval_ms: "int" = 1000
    checkpoint_interval_ms: "int" = 5000
    checkpoint_path: "str" = "ramtrend-checkpoint.json"

    parallelism: "int" = 1
    window_size: "int" = 10

    # listen_address: format ":9186" or
    # "0.0.0.0:9186"
    listen_address: "str" = ":9186"
    log_level: "str" = "info"
    # "console" or "json"
    log_format: "str" = "console"

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            bootstrap_servers=os.environ.get(
                "RAMTREND_BOOTSTRAP_SERVERS", "localhost:9092"
            ),
            group_id=os.environ.get("RAMTREND_GROUP_ID", "myGroup"),
            zookeeper_connect=os.environ.get("RAMTREND_ZOOKEEPER_CONNECT", ""),
        )

    @property
    def bootstrap_server_list(self) -> "list[str]":
        return [s.strip() for s in self.bootstrap_servers.split(",") if s.strip()]
