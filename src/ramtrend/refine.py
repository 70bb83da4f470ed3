from ramtrend.models import UpdateRecord, UsageSample
from ramtrend.state import KeyedStateStore


class RefineStage:
    """
    RefineStage feeds every sample into the accumulator of its key
    and derives the refreshed regression model.

    State is refined and put back into the store before any record
    is returned, so emission never runs ahead of the state that
    produced it.
    """

    def __init__(self, store: "KeyedStateStore") -> "None":
        self._store = store

    @property
    def store(self) -> "KeyedStateStore":
        return self._store

    def process(self, sample: "UsageSample") -> "UpdateRecord | None":
        """
        refines the model of the sample's key. Returns None while the
        key's coefficients are still undefined.
        """
        key = sample.key
        acc = self._store.get_or_create(key)
        acc.refine(sample.event_time, sample.usage)
        self._store.put(key, acc)

        fit = acc.fit()
        if fit is None:
            return None

        return UpdateRecord(
            machine_id=sample.machine_id,
            container_id=sample.container_id,
            intercept=fit.intercept,
            slope=fit.slope,
            slope_std_err=fit.slope_std_err,
            x=sample.event_time,
            y=sample.usage,
        )
