# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Reliable producer.

Reads revenue events from a local JSONL source and delivers each one to the
ingest point, retrying transient failures with exponential backoff. The
source is replayed from its first line whenever it changes; there is no
producer-side cursor, duplicates are absorbed downstream.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import requests

from .. import __version__
from ..shared.backoff import BackoffPolicy, retry_async
from ..shared.config import Config
from ..shared.errors import (
    DeliveryError,
    DeliveryFailedError,
    MalformedEventError,
    UnauthorizedError,
)
from ..shared.event_schema import Event, parse_event_line
from ..shared.line_reader import iter_lines
from ..shared.logging_setup import component_prefix
from .source_watcher import ChangeKind, watch_source

logger = logging.getLogger(__name__)


class EventSender:
    """Blocking HTTP client for the ingest point's delivery endpoint."""

    def __init__(
        self,
        endpoint: str,
        secret: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize sender.

        Args:
            endpoint: Full URL of the delivery endpoint
            secret: Shared-secret credential for the Authorization header
            timeout: Per-request timeout in seconds
            session: Pre-built session (tests)
        """
        self.endpoint = endpoint
        self.timeout = timeout
        self._secret = secret
        self.session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        # No transport-level retries: the producer's backoff policy owns retrying
        session = requests.Session()
        session.headers.update({
            "User-Agent": f"Revledger-Producer/{__version__}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        })
        return session

    def send(self, event: Event) -> None:
        """
        Post one event.

        Raises:
            UnauthorizedError: Ingest point answered 401
            DeliveryError: Connection problem or any other non-201 status
        """
        try:
            response = self.session.post(
                self.endpoint,
                json=event.to_dict(),
                headers={"Authorization": self._secret},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise DeliveryError(f"Cannot reach ingest point at {self.endpoint}", cause=e) from e

        if response.status_code == 201:
            return
        if response.status_code == 401:
            raise UnauthorizedError("Ingest point rejected credential", status_code=401)
        raise DeliveryError(
            f"Ingest point answered HTTP {response.status_code}",
            status_code=response.status_code,
        )

    def close(self) -> None:
        self.session.close()


@dataclass
class SourceRunStats:
    """Outcome of one pass over the source."""
    delivered: int = 0
    malformed: int = 0
    failed: int = 0


class ReliableProducer:
    """
    Delivers every event in the source file to the ingest point.

    Lifecycle:
    - waits for the source to exist (polling)
    - processes it once
    - watches it: a change triggers a full replay, a delete/rename makes it
      wait for the file to come back
    """

    def __init__(
        self,
        source_path: Path,
        sender: EventSender,
        policy: Optional[BackoffPolicy] = None,
        poll_interval: float = 1.0,
        restart_delay: float = 1.0,
        coalesce_window: float = 0.5,
        watch_interval: float = 0.25,
        fail_fast: bool = True,
    ):
        """
        Initialize producer.

        Args:
            source_path: JSONL file of pending events
            sender: Delivery client
            policy: Backoff policy for deliveries
            poll_interval: Seconds between existence checks while the source is missing
            restart_delay: Pause after a delete/rename before polling again
            coalesce_window: Quiet period that ends a burst of source writes
            watch_interval: Seconds between stat() polls while watching
            fail_fast: Let a delivery exhaustion end the run (True) or drop
                the event and carry on with the next line (False)
        """
        self.source_path = Path(source_path)
        self.sender = sender
        self.policy = policy or BackoffPolicy()
        self.poll_interval = poll_interval
        self.restart_delay = restart_delay
        self.coalesce_window = coalesce_window
        self.watch_interval = watch_interval
        self.fail_fast = fail_fast

        self.running = False
        self.runs_completed = 0
        self._reprocess = asyncio.Event()
        self._in_flight = False
        self._prefix = component_prefix("client")

    async def deliver(self, event: Event) -> None:
        """
        Deliver one event, retrying with backoff.

        Raises:
            DeliveryFailedError: Retry ceiling exceeded
        """
        await retry_async(
            lambda: asyncio.to_thread(self.sender.send, event),
            self.policy,
            description=f"event delivery for {event.user_id}",
            retry_on=(DeliveryError,),
            log_prefix=self._prefix,
            exhausted_error=DeliveryFailedError,
        )
        logger.info(f"{self._prefix}Event sent.")

    async def process_source(self) -> SourceRunStats:
        """
        Replay the whole source, delivering every parseable event in order.

        Malformed lines are logged and skipped. A missing source yields an
        empty run.

        Raises:
            DeliveryFailedError: An event could not be delivered (fail_fast only)
        """
        stats = SourceRunStats()
        lines = iter_lines(self.source_path)
        line_number = 0
        try:
            async for line in lines:
                line_number += 1
                if not line.strip():
                    continue
                try:
                    event = parse_event_line(line)
                except MalformedEventError as e:
                    stats.malformed += 1
                    logger.error(f"{self._prefix}Error processing event on line {line_number}: {e}")
                    continue

                try:
                    await self.deliver(event)
                except DeliveryFailedError as e:
                    if self.fail_fast:
                        raise
                    stats.failed += 1
                    logger.error(f"{self._prefix}Dropping event on line {line_number}: {e}")
                    continue
                stats.delivered += 1
        except FileNotFoundError:
            logger.info(f"{self._prefix}File {self.source_path} not found.")
            return stats
        finally:
            await lines.aclose()

        self.runs_completed += 1
        logger.info(
            f"{self._prefix}Processed {self.source_path}: "
            f"{stats.delivered} delivered, {stats.malformed} malformed, {stats.failed} failed"
        )
        return stats

    def request_reprocess(self) -> None:
        """Ask for a replay. Requests made while a replay is running collapse into one rerun."""
        if self._in_flight:
            logger.debug(f"{self._prefix}Replay already in flight, coalescing change")
        self._reprocess.set()

    async def wait_for_source(self) -> bool:
        """Poll until the source exists. Returns False if stopped first."""
        while self.running:
            if self.source_path.exists():
                logger.info(f"{self._prefix}File found. Starting processing and watching...")
                return True
            logger.info(
                f"{self._prefix}File {self.source_path} not found. "
                f"Checking again in {self.poll_interval:g} seconds..."
            )
            await asyncio.sleep(self.poll_interval)
        return False

    async def watch_source(self) -> None:
        """Turn source change notifications into replay requests until stopped."""
        while self.running:
            changes = watch_source(
                self.source_path,
                poll_interval=self.watch_interval,
                coalesce_window=self.coalesce_window,
            )
            try:
                async for change in changes:
                    if change.kind is ChangeKind.DELETED:
                        logger.info(
                            f"{self._prefix}{self.source_path} was renamed (or deleted). "
                            f"Restarting watch process..."
                        )
                        break
                    logger.info(f"{self._prefix}{self.source_path} {change.kind.value}. Reprocessing events...")
                    self.request_reprocess()
            finally:
                await changes.aclose()

            await asyncio.sleep(self.restart_delay)
            if await self.wait_for_source():
                self.request_reprocess()

    async def _process_loop(self) -> None:
        while self.running:
            await self._reprocess.wait()
            if not self.running:
                return
            self._reprocess.clear()
            self._in_flight = True
            try:
                await self.process_source()
            finally:
                self._in_flight = False

    async def run(self) -> None:
        """
        Main producer loop.

        Runs the watcher and the replay loop side by side. A delivery
        exhaustion ends the run with DeliveryFailedError.
        """
        self.running = True
        logger.info(f"{self._prefix}Producer started for {self.source_path}")

        try:
            if not await self.wait_for_source():
                return
            self.request_reprocess()

            tasks = {
                asyncio.create_task(self.watch_source(), name="producer-watch"),
                asyncio.create_task(self._process_loop(), name="producer-replay"),
            }
            try:
                done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            finally:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)

            for task in done:
                if not task.cancelled():
                    task.result()
        finally:
            self.running = False
            logger.info(f"{self._prefix}Producer stopped")

    def stop(self) -> None:
        """Stop the producer."""
        self.running = False
        self._reprocess.set()


def build_producer(config: Config, source_path: Optional[Path] = None) -> ReliableProducer:
    """Wire a producer from configuration."""
    producer_config = config.producer
    sender = EventSender(
        producer_config.endpoint,
        config.ingest.secret,
        timeout=producer_config.timeout,
    )
    return ReliableProducer(
        source_path or config.get_path("paths.source_file"),
        sender,
        policy=config.backoff_policy(),
        poll_interval=producer_config.poll_interval,
        restart_delay=producer_config.restart_delay,
        coalesce_window=producer_config.coalesce_window,
        fail_fast=producer_config.fail_fast,
    )
