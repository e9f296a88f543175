# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
HTTP surface of the ingest point.

Routes:
- POST /liveEvent           accept one event (Authorization: <shared secret>)
- GET  /userEvents/{userId} ledger rows for a user
- GET  /health              liveness
"""

import asyncio
import json
import logging
from typing import Optional

from aiohttp import web

from ..processing.database.schema import create_schema
from ..processing.database.sqlite_client import SQLiteClient
from ..processing.ledger_store import LedgerStore
from ..shared.config import Config
from ..shared.logging_setup import component_prefix
from .ingest_point import STATUS_BAD_REQUEST, STATUS_UNAUTHORIZED, IngestPoint
from .partition_log import PartitionedLogStore

logger = logging.getLogger(__name__)


class IngestServer:
    """aiohttp server wrapping an IngestPoint and a read-only ledger view."""

    def __init__(
        self,
        ingest_point: IngestPoint,
        ledger: Optional[LedgerStore] = None,
        host: str = "127.0.0.1",
        port: int = 8000,
    ):
        self.ingest_point = ingest_point
        self.ledger = ledger
        self.host = host
        self.port = port
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._prefix = component_prefix("server")

    def create_app(self) -> web.Application:
        """Create aiohttp application with ingest and query routes."""
        app = web.Application()
        app.router.add_post("/liveEvent", self.handle_live_event)
        app.router.add_get("/userEvents/{userId}", self.handle_user_events)
        app.router.add_get("/health", self.handle_health)
        return app

    async def handle_live_event(self, request: web.Request) -> web.Response:
        credential = request.headers.get("Authorization")
        if not self.ingest_point.authenticate(credential):
            logger.warning(f"{self._prefix}Rejected event: bad credential")
            return web.json_response({"error": "unauthorized"}, status=STATUS_UNAUTHORIZED)

        try:
            payload = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            return web.json_response(
                {"error": "invalid_json", "detail": str(e)}, status=STATUS_BAD_REQUEST
            )

        # The append fsyncs; keep it off the event loop
        result = await asyncio.to_thread(self.ingest_point.accept, payload, credential)
        return web.json_response(result.body, status=result.status)

    async def handle_user_events(self, request: web.Request) -> web.Response:
        user_id = request.match_info["userId"]
        if self.ledger is None:
            return web.json_response({"error": "ledger_unavailable"}, status=503)

        try:
            rows = await asyncio.to_thread(self.ledger.get_user_rows, user_id)
        except Exception as e:
            logger.error(f"{self._prefix}Error fetching user events: {e}")
            return web.json_response({"error": "query_failed", "detail": str(e)}, status=500)

        return web.json_response(rows, dumps=lambda obj: json.dumps(obj, default=str))

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    async def start(self) -> None:
        """Start listening."""
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()
        logger.info(f"{self._prefix}Server listening on {self.host}:{self.port}")

    async def stop(self) -> None:
        """Stop the server gracefully."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
        logger.info(f"{self._prefix}Server stopped")


def build_server(config: Config) -> IngestServer:
    """Wire log store, ingest point and ledger view from configuration."""
    ingest_config = config.ingest
    log_store = PartitionedLogStore(
        config.get_path("paths.log_dir"),
        window_seconds=ingest_config.window_seconds,
    )

    sqlite_client = SQLiteClient(str(config.get_path("paths.ledger_db")))
    sqlite_client.initialize_database()
    create_schema(sqlite_client)

    return IngestServer(
        IngestPoint(log_store, ingest_config.secret),
        ledger=LedgerStore(sqlite_client),
        host=ingest_config.host,
        port=ingest_config.port,
    )


async def serve(config: Config) -> None:
    """Run the ingest server until cancelled."""
    server = build_server(config)
    await server.start()
    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        await server.stop()
