# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Partitioned append-only event log.

One JSONL file per time window, named ``server_events_<YYMMDDHHMMSS>.jsonl``
where the timestamp is wall-clock time truncated down to the window. Files are
only ever appended to, by the ingest point; the consumer reads them.
"""

import logging
import os
import re
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..shared.event_schema import Event

logger = logging.getLogger(__name__)

PARTITION_PREFIX = "server_events_"
PARTITION_SUFFIX = ".jsonl"
WINDOW_KEY_FORMAT = "%y%m%d%H%M%S"
DEFAULT_WINDOW_SECONDS = 5


class PartitionedLogStore:
    """Append-only JSONL log split into time-window partitions."""

    def __init__(
        self,
        log_dir: Path,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        prefix: str = PARTITION_PREFIX,
    ):
        """
        Initialize log store.

        Args:
            log_dir: Directory holding the partition files
            window_seconds: Width of one partition window
            prefix: File name prefix of partition files
        """
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.log_dir = Path(log_dir).expanduser()
        self.window_seconds = window_seconds
        self.prefix = prefix
        self._name_re = re.compile(
            rf"^{re.escape(prefix)}(\d{{12}}){re.escape(PARTITION_SUFFIX)}$"
        )
        self._lock = threading.Lock()

    def window_key(self, now: Optional[datetime] = None) -> str:
        """Window key for ``now``: time truncated down to the window, as YYMMDDHHMMSS."""
        now = now or datetime.now()
        seconds_of_day = now.hour * 3600 + now.minute * 60 + now.second
        floored = seconds_of_day - (seconds_of_day % self.window_seconds)
        start = now.replace(
            hour=floored // 3600,
            minute=(floored % 3600) // 60,
            second=floored % 60,
            microsecond=0,
        )
        return start.strftime(WINDOW_KEY_FORMAT)

    def partition_name(self, key: str) -> str:
        return f"{self.prefix}{key}{PARTITION_SUFFIX}"

    def parse_partition_name(self, name: str) -> Optional[str]:
        """Return the window key of a partition file name, or None if it isn't one."""
        match = self._name_re.match(name)
        return match.group(1) if match else None

    def partition_path(self, now: Optional[datetime] = None) -> Path:
        return self.log_dir / self.partition_name(self.window_key(now))

    def append(self, event: Event, now: Optional[datetime] = None) -> Path:
        """
        Durably append one event to the current window's partition.

        The line is flushed and fsynced before returning.

        Args:
            event: Event to append
            now: Clock override (defaults to the current time)

        Returns:
            Path of the partition the event was written to

        Raises:
            OSError: If the write or fsync fails
        """
        path = self.partition_path(now)
        line = event.to_json() + "\n"

        with self._lock:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8") as f:
                f.write(line)
                f.flush()
                os.fsync(f.fileno())

        logger.debug(f"Appended event for {event.user_id} to {path.name}")
        return path

    def list_partitions(self) -> List[Path]:
        """Partition files in window-key order. A missing log dir yields no partitions."""
        try:
            entries = list(self.log_dir.iterdir())
        except FileNotFoundError:
            return []

        partitions = [
            (key, entry)
            for entry in entries
            if entry.is_file() and (key := self.parse_partition_name(entry.name))
        ]
        return [path for _, path in sorted(partitions)]
