# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Revenue event schema.

One event per JSONL line: ``{"userId": ..., "eventType": ..., "value": ...}``.
"""

import json
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Union

from .errors import MalformedEventError

# Largest integer SQLite can bind
MAX_INTEGER_VALUE = 2 ** 63 - 1


class EventType(str, Enum):
    """Event types that move a user's revenue."""

    ADD_REVENUE = "add_revenue"
    SUBTRACT_REVENUE = "subtract_revenue"


@dataclass(frozen=True)
class Event:
    """
    A single revenue event.

    ``event_type`` is kept as the raw string so that unrecognised types
    survive parsing; the consumer counts them but does not aggregate them.
    """

    user_id: str
    event_type: str
    value: float

    @property
    def is_revenue_event(self) -> bool:
        return self.event_type in (EventType.ADD_REVENUE.value, EventType.SUBTRACT_REVENUE.value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "eventType": self.event_type,
            "value": self.value,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: Any) -> "Event":
        """
        Build an Event from a decoded JSON object.

        Args:
            data: Decoded JSON value

        Returns:
            Event instance

        Raises:
            MalformedEventError: If required fields are missing or mistyped
        """
        if not isinstance(data, dict):
            raise MalformedEventError(f"Event must be a JSON object, got {type(data).__name__}")

        user_id = data.get("userId")
        if not isinstance(user_id, str) or not user_id.strip():
            raise MalformedEventError("Event is missing a non-empty 'userId'")

        # Older producers sent the type under 'name'
        event_type = data.get("eventType", data.get("name"))
        if not isinstance(event_type, str) or not event_type:
            raise MalformedEventError("Event is missing 'eventType'")

        value = data.get("value")
        # bool is an int subclass; reject it explicitly
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise MalformedEventError(f"Event 'value' must be a number, got {value!r}")
        if isinstance(value, int) and abs(value) > MAX_INTEGER_VALUE:
            raise MalformedEventError(f"Event 'value' {value} is out of range")
        if isinstance(value, float) and not math.isfinite(value):
            raise MalformedEventError(f"Event 'value' must be finite, got {value!r}")

        return cls(user_id=user_id, event_type=event_type, value=value)


def parse_event_line(line: Union[str, bytes]) -> Event:
    """
    Parse one JSONL line into an Event.

    Raises:
        MalformedEventError: On invalid UTF-8, invalid JSON or an invalid event shape
    """
    try:
        if isinstance(line, bytes):
            line = line.decode("utf-8")
        data = json.loads(line)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedEventError(f"Invalid JSON: {e}", cause=e) from e
    return Event.from_dict(data)
