# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Processing service.

Initializes the ledger database and runs the offset-tracked consumer until
shut down.
"""

import asyncio
import logging
from typing import Optional

from ..ingest.partition_log import PartitionedLogStore
from ..shared.config import Config
from .consumer import OffsetTrackedConsumer
from .database.schema import create_schema
from .database.sqlite_client import SQLiteClient
from .ledger_store import LedgerStore
from .offset_store import JSONOffsetStore

logger = logging.getLogger(__name__)


class ProcessingServer:
    """
    Owns the consumer and its stores.

    Manages:
    - SQLite ledger initialization
    - Offset record location
    - Consumer lifecycle
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()
        self.sqlite_client: Optional[SQLiteClient] = None
        self.ledger: Optional[LedgerStore] = None
        self.consumer: Optional[OffsetTrackedConsumer] = None
        self.running = False

    def _initialize_database(self) -> None:
        db_path = self.config.get_path("paths.ledger_db")
        logger.info(f"Initializing ledger database: {db_path}")

        self.sqlite_client = SQLiteClient(str(db_path))
        self.sqlite_client.initialize_database()
        create_schema(self.sqlite_client)
        self.ledger = LedgerStore(self.sqlite_client)

    def _initialize_consumer(self) -> None:
        log_store = PartitionedLogStore(
            self.config.get_path("paths.log_dir"),
            window_seconds=self.config.ingest.window_seconds,
        )
        offset_store = JSONOffsetStore(self.config.get_path("paths.offset_file"))

        self.consumer = OffsetTrackedConsumer(
            log_store=log_store,
            offset_store=offset_store,
            ledger=self.ledger,
            policy=self.config.backoff_policy(),
            poll_interval=self.config.consumer.poll_interval,
        )
        logger.info(f"Consumer reading partitions from {log_store.log_dir}")

    def initialize(self) -> OffsetTrackedConsumer:
        """Build stores and the consumer without starting it."""
        self._initialize_database()
        self._initialize_consumer()
        return self.consumer

    async def start(self) -> None:
        """Initialize and run the consumer (blocks until stopped)."""
        if self.running:
            logger.warning("Processing server already running")
            return

        logger.info("Starting processing server...")
        self.initialize()
        self.running = True
        try:
            await self.consumer.run()
        finally:
            self.running = False

    async def stop(self) -> None:
        """Stop the server gracefully."""
        if self.consumer:
            await self.consumer.stop()
        self.running = False
        logger.info("Processing server stopped")


async def serve(config: Config) -> None:
    """Run the processing server until cancelled."""
    server = ProcessingServer(config)
    try:
        await server.start()
    except asyncio.CancelledError:
        logger.info("Interrupted")
        raise
    finally:
        await server.stop()
