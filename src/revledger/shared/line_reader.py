# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""Non-blocking line streaming for JSONL files."""

import asyncio
from pathlib import Path
from typing import AsyncIterator

READ_HINT_BYTES = 64 * 1024


async def iter_lines(path: Path, hint: int = READ_HINT_BYTES) -> AsyncIterator[bytes]:
    """
    Yield the raw lines of ``path`` in file order, newline included.

    Lines are undecoded bytes; ``parse_event_line`` decodes each one strictly,
    so invalid UTF-8 surfaces as a malformed line instead of being rewritten.
    Reads happen in a worker thread, ``hint`` bytes' worth of whole lines at
    a time, so the event loop is never blocked on disk I/O.

    Raises:
        OSError: If the file can't be opened or read (e.g. FileNotFoundError)
    """
    f = await asyncio.to_thread(open, path, "rb")
    try:
        while True:
            lines = await asyncio.to_thread(f.readlines, hint)
            if not lines:
                return
            for line in lines:
                yield line
    finally:
        f.close()
