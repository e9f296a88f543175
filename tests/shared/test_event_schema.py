# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Tests for the revenue event schema.
"""

import json

import pytest

from revledger.shared.errors import MalformedEventError
from revledger.shared.event_schema import Event, EventType, parse_event_line


class TestParseEventLine:
    """Test parsing of JSONL lines."""

    def test_parses_valid_event(self):
        """Test a well-formed line becomes an Event."""
        event = parse_event_line('{"userId":"u1","eventType":"add_revenue","value":100}\n')
        assert event == Event(user_id="u1", event_type="add_revenue", value=100)
        assert event.is_revenue_event

    def test_parses_raw_bytes(self):
        """Test lines read straight from disk are decoded as UTF-8."""
        event = parse_event_line('{"userId":"ü1","eventType":"add_revenue","value":1}\n'.encode("utf-8"))
        assert event.user_id == "ü1"

    def test_accepts_float_values(self):
        """Test fractional values are kept."""
        event = parse_event_line('{"userId":"u1","eventType":"subtract_revenue","value":12.5}')
        assert event.value == 12.5
        assert event.event_type == EventType.SUBTRACT_REVENUE.value

    def test_accepts_legacy_name_field(self):
        """Test older producers' 'name' field is read as the event type."""
        event = parse_event_line('{"userId":"u1","name":"add_revenue","value":3}')
        assert event.event_type == "add_revenue"

    def test_keeps_unknown_event_type(self):
        """Test unknown types parse but are not revenue events."""
        event = parse_event_line('{"userId":"u1","eventType":"refund_requested","value":3}')
        assert event.event_type == "refund_requested"
        assert not event.is_revenue_event

    @pytest.mark.parametrize("line", [
        "not json",
        "",
        "[1, 2, 3]",
        '{"eventType":"add_revenue","value":1}',
        '{"userId":"","eventType":"add_revenue","value":1}',
        '{"userId":"u1","value":1}',
        '{"userId":"u1","eventType":"add_revenue","value":"10"}',
        '{"userId":"u1","eventType":"add_revenue","value":true}',
        '{"userId":"u1","eventType":"add_revenue"}',
    ])
    def test_rejects_malformed_lines(self, line):
        """Test shape and type errors raise MalformedEventError."""
        with pytest.raises(MalformedEventError):
            parse_event_line(line)

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "-Infinity"])
    def test_rejects_non_finite_values(self, value):
        """Test NaN and infinities never reach the ledger."""
        with pytest.raises(MalformedEventError):
            parse_event_line('{"userId":"u1","eventType":"add_revenue","value":%s}' % value)

    def test_rejects_integers_sqlite_cannot_store(self):
        """Test integers beyond 64 bits are malformed."""
        with pytest.raises(MalformedEventError):
            parse_event_line('{"userId":"u1","eventType":"add_revenue","value":100000000000000000000}')

    def test_accepts_largest_storable_integer(self):
        """Test the 64-bit boundary itself is still valid."""
        event = parse_event_line('{"userId":"u1","eventType":"add_revenue","value":%d}' % (2 ** 63 - 1))
        assert event.value == 2 ** 63 - 1

    def test_rejects_invalid_utf8(self):
        """Test undecodable bytes are malformed rather than replaced."""
        with pytest.raises(MalformedEventError):
            parse_event_line(b'{"userId":"u\xff1","eventType":"add_revenue","value":1}\n')


class TestEventSerialization:
    """Test the wire format."""

    def test_to_dict_uses_wire_field_names(self):
        """Test serialization uses userId/eventType/value."""
        event = Event(user_id="u1", event_type="add_revenue", value=5)
        assert event.to_dict() == {"userId": "u1", "eventType": "add_revenue", "value": 5}

    def test_to_json_is_single_line(self):
        """Test the JSON form fits on one JSONL line."""
        event = Event(user_id="u1", event_type="add_revenue", value=5)
        encoded = event.to_json()
        assert "\n" not in encoded
        assert json.loads(encoded) == event.to_dict()
