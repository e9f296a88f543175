# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Offset-tracked consumer.

Every poll it re-reads each partition file from the start, skips the lines
already folded into the ledger (by stored line offset), aggregates per-user
add/subtract totals over the new lines, commits the net deltas in one ledger
transaction and only then advances the offset.

If the ledger transaction exhausts its retries the offset stays put and the
same line range is retried on the next poll.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from ..ingest.partition_log import PartitionedLogStore
from ..shared.backoff import BackoffPolicy, retry_async
from ..shared.errors import LedgerError, MalformedEventError, RetryExhaustedError
from ..shared.event_schema import Event, EventType, parse_event_line
from ..shared.line_reader import iter_lines
from ..shared.logging_setup import component_prefix
from .ledger_store import LedgerStore
from .offset_store import JSONOffsetStore

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0


@dataclass
class RevenueAggregate:
    """Running add/subtract totals for one user."""
    add: float = 0
    subtract: float = 0
    events: int = 0

    def apply(self, event: Event) -> bool:
        """Fold one event in. Returns False for event types that don't move revenue."""
        if event.event_type == EventType.ADD_REVENUE.value:
            self.add += event.value
        elif event.event_type == EventType.SUBTRACT_REVENUE.value:
            self.subtract += event.value
        else:
            return False
        self.events += 1
        return True

    @property
    def delta(self) -> float:
        return float(self.add - self.subtract)


@dataclass
class PartitionResult:
    """Outcome of one pass over one partition."""
    partition: str
    previous_offset: int
    lines_seen: int = 0
    aggregated: int = 0
    malformed: int = 0
    ignored: int = 0
    deltas: Dict[str, float] = field(default_factory=dict)
    committed: bool = False
    offset: int = 0

    @property
    def new_lines(self) -> int:
        return max(self.lines_seen - self.previous_offset, 0)


class OffsetTrackedConsumer:
    """
    Drains partition files into the ledger.

    Exactly one consumer may run against a given offset record.
    """

    def __init__(
        self,
        log_store: PartitionedLogStore,
        offset_store: JSONOffsetStore,
        ledger: LedgerStore,
        policy: Optional[BackoffPolicy] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        """
        Initialize consumer.

        Args:
            log_store: Partitioned log to read
            offset_store: Per-partition line offsets
            ledger: Ledger receiving the per-user deltas
            policy: Backoff policy for the ledger transaction
            poll_interval: Seconds between polls
        """
        self.log_store = log_store
        self.offset_store = offset_store
        self.ledger = ledger
        self.policy = policy or BackoffPolicy()
        self.poll_interval = poll_interval

        self.running = False
        self._task: Optional[asyncio.Task] = None
        self._prefix = component_prefix("data_processor")

    def discover_partitions(self) -> List[Path]:
        """Partition files currently in the log directory."""
        return self.log_store.list_partitions()

    async def process_partition(self, path: Path) -> PartitionResult:
        """
        Aggregate the unseen lines of one partition and commit them.

        Lines with index <= stored offset are skipped. Malformed lines and
        unknown event types are counted toward the offset but not aggregated.
        A trailing line without its newline is an append in progress and is
        left for the next poll.

        Args:
            path: Partition file

        Returns:
            PartitionResult describing what was read and committed
        """
        name = path.name
        stored = await asyncio.to_thread(self.offset_store.get_offset, name)
        result = PartitionResult(partition=name, previous_offset=stored, offset=stored)
        aggregates: Dict[str, RevenueAggregate] = {}

        lines = iter_lines(path)
        try:
            async for line in lines:
                if not line.endswith(b"\n"):
                    break
                result.lines_seen += 1
                if result.lines_seen <= stored:
                    continue

                try:
                    event = parse_event_line(line)
                except MalformedEventError as e:
                    result.malformed += 1
                    logger.error(
                        f"{self._prefix}Error parsing JSON in {name} line {result.lines_seen}: {e}"
                    )
                    continue

                if aggregates.setdefault(event.user_id, RevenueAggregate()).apply(event):
                    result.aggregated += 1
                else:
                    result.ignored += 1
        except FileNotFoundError:
            logger.info(f"{self._prefix}File {name} not found. Waiting for file creation...")
            await asyncio.to_thread(self.offset_store.reset, name)
            result.offset = 0
            return result
        except OSError as e:
            logger.error(f"{self._prefix}Error reading file {name}: {e}")
            return result
        finally:
            await lines.aclose()

        if result.lines_seen < stored:
            logger.warning(
                f"{self._prefix}{name} has {result.lines_seen} lines but offset is {stored}; "
                f"leaving offset unchanged"
            )
            return result

        if result.lines_seen == stored:
            result.committed = True
            return result

        result.deltas = {
            user_id: aggregate.delta
            for user_id, aggregate in aggregates.items()
            if aggregate.events
        }

        if result.deltas:
            try:
                await self._commit(name, result.deltas)
            except RetryExhaustedError as e:
                logger.error(
                    f"{self._prefix}Error updating database for {name}: {e}. "
                    f"Offset stays at {stored}; lines {stored + 1}-{result.lines_seen} "
                    f"will be retried next poll"
                )
                return result

        result.offset = await asyncio.to_thread(
            self.offset_store.save_offset, name, result.lines_seen
        )
        result.committed = True
        return result

    async def _commit(self, partition: str, deltas: Dict[str, float]) -> None:
        """Apply deltas in one ledger transaction, retried with backoff."""
        await retry_async(
            lambda: asyncio.to_thread(self.ledger.apply_deltas, deltas),
            self.policy,
            description=f"ledger update for {partition}",
            retry_on=(LedgerError,),
            log_prefix=self._prefix,
        )
        for user_id in deltas:
            logger.info(f"{self._prefix}Updated {user_id}.")
        logger.info(f"{self._prefix}Database updated successfully")

    async def process_once(self) -> List[PartitionResult]:
        """Run one poll over every partition."""
        logger.info(f"{self._prefix}Checking for new events")
        results = []
        for path in self.discover_partitions():
            try:
                results.append(await self.process_partition(path))
            except Exception as e:
                # Later partitions still run
                logger.error(f"{self._prefix}Error processing {path.name}: {e}", exc_info=True)
        return results

    async def start(self) -> None:
        """Start polling in a background task."""
        if self.running:
            logger.warning("Consumer already running")
            return

        logger.info(f"{self._prefix}Starting consumer (interval={self.poll_interval}s)")
        self.running = True
        self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        """Stop the consumer gracefully."""
        if not self.running:
            return

        logger.info(f"{self._prefix}Stopping consumer...")
        self.running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info(f"{self._prefix}Consumer stopped")

    async def run(self) -> None:
        """Main polling loop."""
        self.running = True
        while self.running:
            try:
                await self.process_once()
            except asyncio.CancelledError:
                logger.info(f"{self._prefix}Consumer cancelled")
                break
            except Exception as e:
                logger.error(f"{self._prefix}Error checking for changes: {e}", exc_info=True)

            try:
                await asyncio.sleep(self.poll_interval)
            except asyncio.CancelledError:
                break
