class WatermarkTracker:
    """
    WatermarkTracker follows event time progress: the watermark
    declares that no sample older than it is expected anymore.
    """

    def __init__(self, max_out_of_orderness: "int" = 0) -> "None":
        if max_out_of_orderness < 0:
            raise ValueError("max_out_of_orderness must not be negative")
        self._lateness = max_out_of_orderness
        self._max_event_time: "int | None" = None

    def observe(self, event_time: "int") -> "None":
        if self._max_event_time is None or event_time > self._max_event_time:
            self._max_event_time = event_time

    def current(self) -> "int | None":
        """
        returns the current watermark, or None before any sample.
        """
        if self._max_event_time is None:
            return None
        return self._max_event_time - self._lateness
