# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Tests for the polling source watcher.
"""

import asyncio
import os

import pytest

from revledger.capture.source_watcher import ChangeKind, snapshot, watch_source

POLL = 0.01
COALESCE = 0.1


async def next_change(changes, act, timeout=2.0):
    """Await the next notification while ``act`` mutates the file concurrently."""
    async def delayed():
        # Let the watcher take its baseline first
        await asyncio.sleep(0.05)
        await act()

    actor = asyncio.create_task(delayed())
    try:
        return await asyncio.wait_for(changes.__anext__(), timeout)
    finally:
        await actor


def append(path, text):
    with open(path, "a", encoding="utf-8") as f:
        f.write(text)


class TestSnapshot:
    """Test stat snapshots."""

    def test_missing_file(self, tmp_path):
        """Test a missing file has no snapshot."""
        assert snapshot(tmp_path / "nope.jsonl") is None

    def test_changes_with_content(self, tmp_path):
        """Test appends change the snapshot."""
        path = tmp_path / "events.jsonl"
        path.write_text("a\n")
        before = snapshot(path)
        append(path, "b\n")
        assert snapshot(path) != before


class TestWatchSource:
    """Test change notifications."""

    def test_modification(self, tmp_path):
        """Test an append yields MODIFIED."""
        path = tmp_path / "events.jsonl"
        path.write_text("{}\n")

        async def scenario():
            changes = watch_source(path, poll_interval=POLL, coalesce_window=COALESCE)

            async def act():
                append(path, "{}\n")

            try:
                return await next_change(changes, act)
            finally:
                await changes.aclose()

        change = asyncio.run(scenario())
        assert change.kind is ChangeKind.MODIFIED
        assert change.path == path

    def test_burst_is_coalesced(self, tmp_path):
        """Test a burst of writes yields a single MODIFIED."""
        path = tmp_path / "events.jsonl"
        path.write_text("")

        async def scenario():
            changes = watch_source(path, poll_interval=POLL, coalesce_window=COALESCE)

            async def burst():
                for _ in range(5):
                    append(path, "{}\n")
                    await asyncio.sleep(0.01)

            try:
                first = await next_change(changes, burst)
                with pytest.raises(asyncio.TimeoutError):
                    await asyncio.wait_for(changes.__anext__(), 0.3)
                return first
            finally:
                await changes.aclose()

        assert asyncio.run(scenario()).kind is ChangeKind.MODIFIED

    def test_delete_then_recreate(self, tmp_path):
        """Test deletion yields DELETED and reappearance CREATED."""
        path = tmp_path / "events.jsonl"
        path.write_text("{}\n")

        async def scenario():
            changes = watch_source(path, poll_interval=POLL, coalesce_window=COALESCE)

            async def remove():
                os.remove(path)

            async def recreate():
                path.write_text("{}\n")

            try:
                deleted = await next_change(changes, remove)
                created = await next_change(changes, recreate)
                return deleted, created
            finally:
                await changes.aclose()

        deleted, created = asyncio.run(scenario())
        assert deleted.kind is ChangeKind.DELETED
        assert created.kind is ChangeKind.CREATED

    def test_rename_away_reads_as_delete(self, tmp_path):
        """Test renaming the source away yields DELETED."""
        path = tmp_path / "events.jsonl"
        path.write_text("{}\n")

        async def scenario():
            changes = watch_source(path, poll_interval=POLL, coalesce_window=COALESCE)

            async def rename():
                os.rename(path, tmp_path / "events.jsonl.bak")

            try:
                return await next_change(changes, rename)
            finally:
                await changes.aclose()

        assert asyncio.run(scenario()).kind is ChangeKind.DELETED
