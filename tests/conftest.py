# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""Shared fixtures for pipeline tests."""

import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from revledger.ingest.partition_log import PartitionedLogStore
from revledger.processing.database.schema import create_schema
from revledger.processing.database.sqlite_client import SQLiteClient
from revledger.processing.ledger_store import LedgerStore
from revledger.processing.offset_store import JSONOffsetStore


@pytest.fixture
def sqlite_client(tmp_path):
    client = SQLiteClient(str(tmp_path / "db" / "ledger.db"))
    client.initialize_database()
    create_schema(client)
    return client


@pytest.fixture
def ledger(sqlite_client):
    return LedgerStore(sqlite_client)


@pytest.fixture
def log_store(tmp_path):
    return PartitionedLogStore(tmp_path / "log", window_seconds=5)


@pytest.fixture
def offset_store(tmp_path):
    return JSONOffsetStore(tmp_path / "processor_offset.json")


@pytest.fixture
def event_line():
    """Build one JSONL event line."""
    def _line(user_id, event_type, value):
        return json.dumps({"userId": user_id, "eventType": event_type, "value": value}) + "\n"
    return _line


@pytest.fixture
def write_partition(log_store):
    """Write raw lines into a partition file and return its path."""
    def _write(lines, key="240101120000", mode="a"):
        log_store.log_dir.mkdir(parents=True, exist_ok=True)
        path = log_store.log_dir / log_store.partition_name(key)
        with open(path, mode, encoding="utf-8") as f:
            f.writelines(lines)
        return path
    return _write
