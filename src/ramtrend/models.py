from dataclasses import dataclass

# (machine_id, container_id)
Key = tuple[str, str]


@dataclass(frozen=True, slots=True)
class UsageSample:
    """
    UsageSample represents a single resource usage data
    point reported for a container.
    """

    machine_id: "str"
    container_id: "str"
    # unix timestamp in seconds, sub-second precision discarded
    event_time: "int"
    # memory usage in bytes
    usage: "int"

    @property
    def key(self) -> "Key":
        return (self.machine_id, self.container_id)


@dataclass(frozen=True, slots=True)
class UpdateRecord:
    """
    UpdateRecord carries the regression model of a key right
    after it was refined with the sample (x, y).
    """

    machine_id: "str"
    container_id: "str"
    intercept: "float"
    slope: "float"
    slope_std_err: "float"
    # event time of the sample that produced this update
    x: "int"
    # usage of the sample that produced this update
    y: "int"

    @property
    def key(self) -> "Key":
        return (self.machine_id, self.container_id)
