from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram


class PipelineMetrics:
    """
    applies pipeline progress to Prometheus metrics.
     - samples_total: samples accepted by the parser.
     - samples_dropped_total: samples or updates dropped, labeled
     by reason.
     - model_updates_total: update records produced by refinement.
     - models_published_total: freshest-of-window records sent out.
    """

    def __init__(self, registry: "CollectorRegistry" = REGISTRY) -> "None":
        self._samples: "Counter" = Counter(
            "ramtrend_samples_total",
            "Total usage samples accepted for refinement",
            registry=registry,
        )
        self._dropped: "Counter" = Counter(
            "ramtrend_samples_dropped_total",
            "Total samples dropped before emission by reason",
            ["reason"],
            registry=registry,
        )
        self._updates: "Counter" = Counter(
            "ramtrend_model_updates_total",
            "Total regression model updates produced",
            registry=registry,
        )
        self._published: "Counter" = Counter(
            "ramtrend_models_published_total",
            "Total models published to the output topic",
            registry=registry,
        )
        self._encode_errors: "Counter" = Counter(
            "ramtrend_encode_errors_total",
            "Total update records dropped because they could not be encoded",
            registry=registry,
        )
        self._checkpoint_duration: "Histogram" = Histogram(
            "ramtrend_checkpoint_duration_seconds",
            "Duration of checkpoints",
            registry=registry,
        )
        self._last_checkpoint: "Gauge" = Gauge(
            "ramtrend_last_checkpoint_timestamp_seconds",
            "Unix timestamp of the last completed checkpoint",
            registry=registry,
        )
        self._tracked_keys: "Gauge" = Gauge(
            "ramtrend_tracked_keys",
            "Number of (machine, container) keys holding a model",
            registry=registry,
        )
        self._watermark: "Gauge" = Gauge(
            "ramtrend_watermark_timestamp_seconds",
            "Current event time watermark",
            registry=registry,
        )

    def inc_sample(self) -> "None":
        self._samples.inc()

    def inc_dropped(self, reason: "str") -> "None":
        self._dropped.labels(reason=reason).inc()

    def inc_update(self) -> "None":
        self._updates.inc()

    def inc_published(self) -> "None":
        self._published.inc()

    def inc_encode_error(self) -> "None":
        self._encode_errors.inc()

    def observe_checkpoint(
        self, duration_seconds: "float", timestamp: "float", tracked_keys: "int"
    ) -> "None":
        self._checkpoint_duration.observe(duration_seconds)
        self._last_checkpoint.set(timestamp)
        self._tracked_keys.set(tracked_keys)

    def set_watermark(self, watermark: "int") -> "None":
        self._watermark.set(watermark)
