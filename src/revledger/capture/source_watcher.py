# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Polling watcher for the producer's source file.

``watch_source`` is a lazy, infinite async generator of change notifications.
It compares ``os.stat`` snapshots (inode, size, mtime) on every poll; a burst
of writes is coalesced into one MODIFIED notification once the file has been
quiet for ``coalesce_window`` seconds. Calling it again restarts the stream
from the file's current state.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Optional, Tuple

logger = logging.getLogger(__name__)

Snapshot = Tuple[int, int, int]

DEFAULT_POLL_INTERVAL = 0.25
DEFAULT_COALESCE_WINDOW = 0.5
# A file that never goes quiet still produces a notification this often
MAX_SETTLE_WINDOWS = 4


class ChangeKind(str, Enum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True)
class SourceChange:
    kind: ChangeKind
    path: Path


def snapshot(path: Path) -> Optional[Snapshot]:
    """Identity and content fingerprint of ``path``, or None if it doesn't exist."""
    try:
        st = os.stat(path)
    except FileNotFoundError:
        return None
    return (st.st_ino, st.st_size, st.st_mtime_ns)


async def _settle(
    path: Path,
    current: Snapshot,
    poll_interval: float,
    coalesce_window: float,
) -> Optional[Snapshot]:
    """Wait until ``path`` stops changing; return its final snapshot (None if it vanished)."""
    loop = asyncio.get_running_loop()
    hard_deadline = loop.time() + coalesce_window * MAX_SETTLE_WINDOWS
    quiet_deadline = loop.time() + coalesce_window

    while loop.time() < min(quiet_deadline, hard_deadline):
        await asyncio.sleep(poll_interval)
        latest = snapshot(path)
        if latest is None:
            return None
        if latest != current:
            current = latest
            quiet_deadline = loop.time() + coalesce_window
    return current


async def watch_source(
    path: Path,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    coalesce_window: float = DEFAULT_COALESCE_WINDOW,
) -> AsyncIterator[SourceChange]:
    """
    Yield change notifications for ``path`` forever.

    Args:
        path: File to watch
        poll_interval: Seconds between stat() polls
        coalesce_window: Quiet period that ends a burst of writes

    Yields:
        SourceChange for each creation, settled modification or deletion
    """
    path = Path(path)
    last = snapshot(path)

    while True:
        await asyncio.sleep(poll_interval)
        current = snapshot(path)
        if current == last:
            continue

        if current is None:
            last = None
            logger.debug(f"{path} disappeared")
            yield SourceChange(ChangeKind.DELETED, path)
            continue

        if last is None:
            last = current
            logger.debug(f"{path} appeared")
            yield SourceChange(ChangeKind.CREATED, path)
            continue

        settled = await _settle(path, current, poll_interval, coalesce_window)
        last = settled
        if settled is None:
            yield SourceChange(ChangeKind.DELETED, path)
        else:
            yield SourceChange(ChangeKind.MODIFIED, path)
