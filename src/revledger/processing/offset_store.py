# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""JSON file persistence for per-partition line offsets."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict

logger = logging.getLogger(__name__)


class JSONOffsetStore:
    """
    Read/write line offsets keyed by partition file name.

    The record is a single JSON object ``{"server_events_...jsonl": 42, ...}``.
    A missing or malformed file reads as an empty mapping. Writes go through a
    temp file and ``os.replace`` so a crash never leaves a torn record.
    """

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()

    def load_offsets(self) -> Dict[str, int]:
        """
        Load every stored offset.

        Returns:
            Mapping of partition name to line count (empty if absent or malformed)
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            logger.warning(f"Could not read offset file {self.path}: {e}")
            return {}

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning(f"Offset file {self.path} is malformed, treating as empty: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Offset file {self.path} is not a JSON object, treating as empty")
            return {}

        return {
            str(name): value
            for name, value in data.items()
            if isinstance(value, int) and not isinstance(value, bool) and value >= 0
        }

    def get_offset(self, partition: str) -> int:
        """Lines already aggregated from ``partition`` (0 if untracked)."""
        return self.load_offsets().get(partition, 0)

    def save_offset(self, partition: str, offset: int) -> int:
        """
        Advance the stored offset for ``partition``.

        Offsets never move backwards here; use ``reset`` for that.

        Returns:
            The offset now stored
        """
        if offset < 0:
            raise ValueError("offset must be non-negative")

        offsets = self.load_offsets()
        current = offsets.get(partition, 0)
        if offset < current:
            logger.warning(
                f"Refusing to move offset for {partition} backwards ({current} -> {offset})"
            )
            return current

        offsets[partition] = offset
        self._write(offsets)
        return offset

    def reset(self, partition: str) -> None:
        """Set the offset for ``partition`` to 0."""
        offsets = self.load_offsets()
        offsets[partition] = 0
        self._write(offsets)

    def _write(self, offsets: Dict[str, int]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(offsets, f, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
