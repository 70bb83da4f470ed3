import json

import structlog

from ramtrend.models import UpdateRecord

logger = structlog.get_logger()


def record_key(record: "UpdateRecord") -> "bytes":
    """
    builds the output message key so the output topic is
    partitioned like the input.
    """
    return f"{record.machine_id}|{record.container_id}".encode()


def encode_record(record: "UpdateRecord") -> "bytes | None":
    """
    serializes an update record to the output JSON format. Records
    that can't be encoded (e.g. non-finite coefficients) are logged
    and dropped by returning None.
    """
    doc = {
        "machine_name": record.machine_id,
        "container_name": record.container_id,
        "model_intercept": record.intercept,
        "model_slope": record.slope,
        "model_slope_err": record.slope_std_err,
        "x": record.x,
        "y": record.y,
    }
    try:
        return json.dumps(doc, allow_nan=False).encode()
    except (TypeError, ValueError) as exc:
        logger.warning(
            "record_encode_failed",
            machine=record.machine_id,
            container=record.container_id,
            error=str(exc),
        )
        return None
