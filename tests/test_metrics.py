from prometheus_client import CollectorRegistry

from ramtrend.metrics import PipelineMetrics


class TestPipelineMetrics:
    def test_registers_metric_families(self, registry: "CollectorRegistry") -> "None":
        PipelineMetrics(registry=registry)
        # prometheus_client strips _total suffix from Counter family names
        names = [m.name for m in registry.collect()]
        assert "ramtrend_samples" in names
        assert "ramtrend_samples_dropped" in names
        assert "ramtrend_models_published" in names
        assert "ramtrend_checkpoint_duration_seconds" in names

    def test_dropped_is_labeled_by_reason(self, registry: "CollectorRegistry") -> "None":
        metrics = PipelineMetrics(registry=registry)
        metrics.inc_dropped("bad_timestamp")
        metrics.inc_dropped("bad_timestamp")
        metrics.inc_dropped("malformed")

        assert (
            registry.get_sample_value(
                "ramtrend_samples_dropped_total", {"reason": "bad_timestamp"}
            )
            == 2.0
        )
        assert (
            registry.get_sample_value(
                "ramtrend_samples_dropped_total", {"reason": "malformed"}
            )
            == 1.0
        )

    def test_observe_checkpoint(self, registry: "CollectorRegistry") -> "None":
        metrics = PipelineMetrics(registry=registry)
        metrics.observe_checkpoint(0.5, 1234.0, 7)

        assert registry.get_sample_value("ramtrend_checkpoint_duration_seconds_count") == 1.0
        assert (
            registry.get_sample_value("ramtrend_last_checkpoint_timestamp_seconds")
            == 1234.0
        )
        assert registry.get_sample_value("ramtrend_tracked_keys") == 7.0

    def test_set_watermark(self, registry: "CollectorRegistry") -> "None":
        metrics = PipelineMetrics(registry=registry)
        metrics.set_watermark(1_700_000_000)
        assert (
            registry.get_sample_value("ramtrend_watermark_timestamp_seconds")
            == 1_700_000_000.0
        )
