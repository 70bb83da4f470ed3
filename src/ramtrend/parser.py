import json
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog

from ramtrend.models import UsageSample

logger = structlog.get_logger()

# drop reasons, also used as metric label values
BAD_TIMESTAMP = "bad_timestamp"
MALFORMED = "malformed"

# RFC 3339 instant; the fraction may carry nanoseconds (Go's time.Time)
_INSTANT_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.\d+)?(Z|[+-]\d{2}:\d{2})$"
)


@dataclass(frozen=True, slots=True)
class ParseResult:
    """
    ParseResult is either a parsed sample or the reason the
    payload was dropped.
    """

    sample: "UsageSample | None" = None
    error: "str | None" = None

    @property
    def ok(self) -> "bool":
        return self.sample is not None


def parse_instant(value: "Any") -> "int | None":
    """
    parses an ISO-8601 instant into whole epoch seconds. Returns None
    when the value is not a valid instant or lies before the epoch.
    """
    if not isinstance(value, str):
        return None

    match = _INSTANT_RE.match(value.strip())
    if match is None:
        return None

    base, offset = match.groups()
    if offset == "Z":
        offset = "+00:00"

    try:
        dt = datetime.fromisoformat(base + offset)
    except ValueError:
        return None

    epoch = int(dt.timestamp())
    if epoch < 0:
        return None
    return epoch


def _as_int(value: "Any") -> "int | None":
    # bool is an int subclass but never a valid counter
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def parse_sample(payload: "bytes | str | dict[str, Any]") -> "ParseResult":
    """
    turns a raw cAdvisor event into a UsageSample. Malformed
    payloads are reported through the result, never raised.
    """
    if isinstance(payload, dict):
        event = payload
    else:
        try:
            event = json.loads(payload)
        except (TypeError, ValueError):
            logger.debug("sample_invalid_json")
            return ParseResult(error=MALFORMED)

    if not isinstance(event, dict):
        return ParseResult(error=MALFORMED)

    machine = event.get("machine_name")
    container = event.get("container_name")
    if not isinstance(machine, str) or not isinstance(container, str):
        logger.debug("sample_missing_key", machine=machine, container=container)
        return ParseResult(error=MALFORMED)

    stats = event.get("container_stats")
    memory = stats.get("memory") if isinstance(stats, dict) else None
    usage = _as_int(memory.get("usage")) if isinstance(memory, dict) else None
    if usage is None:
        logger.debug("sample_missing_usage", machine=machine, container=container)
        return ParseResult(error=MALFORMED)

    event_time = parse_instant(event.get("timestamp"))
    if event_time is None:
        logger.debug(
            "sample_bad_timestamp",
            machine=machine,
            container=container,
            timestamp=event.get("timestamp"),
        )
        return ParseResult(error=BAD_TIMESTAMP)

    return ParseResult(
        sample=UsageSample(
            machine_id=machine,
            container_id=container,
            event_time=event_time,
            usage=usage,
        )
    )
