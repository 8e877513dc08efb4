"""Durable, atomic load/save of the retention state document."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from core.exceptions import SnapshotCorruptError
from schemas.retention import RetentionSnapshot


logger = logging.getLogger(__name__)


class SnapshotStore:
    """Reads and writes one JSON snapshot file.

    Writes go to a temporary sibling file that is fsynced and then moved over
    the previous document with ``os.replace``, so readers see either the old
    or the new document, never a partial one.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    def load(self) -> RetentionSnapshot:
        """Load the snapshot, or an empty one if no document exists yet.

        Raises:
            SnapshotCorruptError: the document exists but is not a valid snapshot.
        """
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            logger.info("No state snapshot at %s; starting empty", self.path)
            return RetentionSnapshot()

        try:
            snapshot = RetentionSnapshot.model_validate_json(raw)
        except ValidationError as e:
            raise SnapshotCorruptError(
                f"State snapshot {self.path} is malformed: {e.error_count()} error(s); "
                "fix or remove the file before restarting"
            ) from e

        logger.info(
            "Loaded state snapshot from %s: %d policies, %d scheduled, %d windows",
            self.path,
            len(snapshot.policies),
            len(snapshot.scheduled),
            len(snapshot.windows),
        )
        return snapshot

    def save(self, snapshot: RetentionSnapshot) -> None:
        """Atomically replace the stored document with ``snapshot``."""
        payload = snapshot.model_dump_json(indent=2)
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=directory
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
