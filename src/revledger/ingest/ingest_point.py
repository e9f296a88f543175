# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Ingest point: validates inbound events and appends them to the partitioned log.

Returns 201 only after the append is durable; the producer treats anything
other than 201 as a failed delivery.
"""

import hmac
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..shared.errors import MalformedEventError
from ..shared.event_schema import Event
from ..shared.logging_setup import component_prefix
from .partition_log import PartitionedLogStore

logger = logging.getLogger(__name__)

STATUS_CREATED = 201
STATUS_BAD_REQUEST = 400
STATUS_UNAUTHORIZED = 401
STATUS_SERVER_ERROR = 500


@dataclass
class IngestResult:
    """Status code and machine-readable body of one accept() call."""
    status: int
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def accepted(self) -> bool:
        return self.status == STATUS_CREATED


class IngestPoint:
    """Accepts events from producers and appends them to the log."""

    def __init__(self, log_store: PartitionedLogStore, secret: str):
        self.log_store = log_store
        self._secret = secret
        self._prefix = component_prefix("server")

    def authenticate(self, credential: Optional[str]) -> bool:
        if credential is None:
            return False
        return hmac.compare_digest(credential.encode("utf-8"), self._secret.encode("utf-8"))

    def accept(self, payload: Any, credential: Optional[str]) -> IngestResult:
        """
        Validate and durably append one event.

        Args:
            payload: Decoded JSON request body
            credential: Shared-secret credential sent by the producer

        Returns:
            IngestResult with 201, 400, 401 or 500
        """
        if not self.authenticate(credential):
            logger.warning(f"{self._prefix}Rejected event: bad credential")
            return IngestResult(STATUS_UNAUTHORIZED, {"error": "unauthorized"})

        try:
            event = Event.from_dict(payload)
        except MalformedEventError as e:
            logger.warning(f"{self._prefix}Rejected malformed event: {e}")
            return IngestResult(STATUS_BAD_REQUEST, {"error": "invalid_event", "detail": str(e)})

        try:
            path = self.log_store.append(event)
        except OSError as e:
            logger.error(f"{self._prefix}Error writing to file: {e}")
            return IngestResult(STATUS_SERVER_ERROR, {"error": "append_failed", "detail": str(e)})

        logger.info(f"{self._prefix}Event received and saved to {path.name}: {event.to_dict()}")
        return IngestResult(STATUS_CREATED, {"message": "Event received"})
