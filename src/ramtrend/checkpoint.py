import json
import os
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

logger = structlog.get_logger()

CHECKPOINT_VERSION = 1

# (topic, partition) -> next offset to consume
Offsets = dict[tuple[str, int], int]


class CheckpointError(Exception):
    """Raised when a checkpoint file exists but can't be used."""


@dataclass
class Checkpoint:
    """
    Checkpoint couples the pipeline state with the input position it
    reflects: restoring both together means no sample is refined
    twice and none is skipped.
    """

    pipeline: "dict[str, Any]"
    offsets: "Offsets" = field(default_factory=dict)
    created_at: "float" = field(default_factory=time.time)

    def to_dict(self) -> "dict[str, Any]":
        return {
            "version": CHECKPOINT_VERSION,
            "created_at": self.created_at,
            "offsets": [
                [topic, partition, offset]
                for (topic, partition), offset in sorted(self.offsets.items())
            ],
            "pipeline": self.pipeline,
        }

    @classmethod
    def from_dict(cls, data: "dict[str, Any]") -> "Checkpoint":
        version = data.get("version")
        if version != CHECKPOINT_VERSION:
            raise CheckpointError(f"unsupported checkpoint version: {version}")
        return cls(
            pipeline=data["pipeline"],
            offsets={
                (str(topic), int(partition)): int(offset)
                for topic, partition, offset in data.get("offsets", [])
            },
            created_at=float(data.get("created_at", 0.0)),
        )


class CheckpointStorage:
    """
    CheckpointStorage keeps the latest checkpoint in a single JSON
    file. Writes go to a temporary file that atomically replaces the
    previous checkpoint, so a crash mid-write leaves the last
    completed checkpoint in place.
    """

    def __init__(self, path: "str | os.PathLike[str]") -> "None":
        self._path = Path(path)

    @property
    def path(self) -> "Path":
        return self._path

    def save(self, checkpoint: "Checkpoint") -> "None":
        directory = self._path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=directory
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(checkpoint.to_dict(), fh)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self._path)
        except BaseException:
            # leave the previous checkpoint untouched
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug("checkpoint_saved", path=str(self._path))

    def load(self) -> "Checkpoint | None":
        """
        returns the latest checkpoint, or None when there is none yet.
        """
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise CheckpointError(f"corrupt checkpoint {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise CheckpointError(f"corrupt checkpoint {self._path}")

        try:
            return Checkpoint.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise CheckpointError(f"invalid checkpoint {self._path}: {exc}") from exc
