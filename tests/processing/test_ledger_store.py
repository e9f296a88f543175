# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Tests for LedgerStore and the ledger schema.
"""

import pytest

from revledger.processing.database.schema import SCHEMA_VERSION, create_schema, get_schema_version
from revledger.shared.errors import LedgerError


class TestSchema:
    """Test ledger schema creation."""

    def test_schema_version_recorded(self, sqlite_client):
        """Test the schema version row is written."""
        assert get_schema_version(sqlite_client) == SCHEMA_VERSION

    def test_create_schema_is_idempotent(self, sqlite_client, ledger):
        """Test re-running create_schema keeps existing rows."""
        ledger.apply_deltas({"u1": 5})
        create_schema(sqlite_client)
        assert ledger.get_revenue("u1") == 5


class TestApplyDeltas:
    """Test delta upserts."""

    def test_creates_row_on_first_delta(self, ledger):
        """Test the first delta creates the user's row."""
        ledger.apply_deltas({"u1": 70})
        assert ledger.get_revenue("u1") == 70

    def test_deltas_accumulate(self, ledger):
        """Test later deltas add to the stored total."""
        ledger.apply_deltas({"u1": 70, "u2": 5})
        ledger.apply_deltas({"u1": -20})
        assert ledger.all_totals() == {"u1": 50, "u2": 5}

    def test_negative_first_delta(self, ledger):
        """Test a user can start below zero."""
        ledger.apply_deltas({"u1": -3.5})
        assert ledger.get_revenue("u1") == -3.5

    def test_empty_batch_is_noop(self, ledger):
        """Test an empty batch writes nothing."""
        ledger.apply_deltas({})
        assert ledger.all_totals() == {}

    def test_failed_batch_rolls_back_every_user(self, ledger):
        """Test one failing upsert rolls back the whole batch."""
        ledger.apply_deltas({"u1": 1})

        with pytest.raises(LedgerError):
            ledger.apply_deltas({"u1": 10, "u2": object()})

        assert ledger.all_totals() == {"u1": 1}

    def test_unknown_user_has_no_rows(self, ledger):
        """Test lookups for absent users."""
        assert ledger.get_user_rows("ghost") == []
        assert ledger.get_revenue("ghost") is None

    def test_user_rows_shape(self, ledger):
        """Test the columns returned for a user row."""
        ledger.apply_deltas({"u1": 2})
        rows = ledger.get_user_rows("u1")
        assert len(rows) == 1
        assert set(rows[0]) == {"user_id", "revenue", "updated_at"}
