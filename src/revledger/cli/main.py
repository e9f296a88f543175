# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Main CLI entry point for the revenue pipeline.
"""

import asyncio
import os
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from .. import __version__
from ..ingest.partition_log import PartitionedLogStore
from ..processing.database.schema import create_schema
from ..processing.database.sqlite_client import SQLiteClient
from ..processing.ledger_store import LedgerStore
from ..processing.offset_store import JSONOffsetStore
from ..shared.config import Config
from ..shared.logging_setup import setup_logging

console = Console()

pass_config = click.make_pass_decorator(Config)


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version and exit")
@click.option(
    "--config-dir",
    envvar="REVLEDGER_CONFIG_DIR",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory containing config.yaml",
)
@click.option("--debug", envvar="REVLEDGER_DEBUG", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, version: bool, config_dir: Optional[str], debug: bool):
    """
    Revledger - revenue events from producer to ledger.

    Examples:
        revledger ingest
        revledger produce --source events.jsonl
        revledger consume
        revledger ledger u1
    """
    if version:
        click.echo(f"Revledger version {__version__}")
        ctx.exit()

    config = Config(config_dir=config_dir)
    if debug:
        config.set("logging.level", "DEBUG")
    setup_logging(config.get("logging.level", "INFO"))
    ctx.obj = config

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.option("--port", type=int, default=None, help="Port to listen on")
@pass_config
def ingest(config: Config, port: Optional[int]):
    """Run the ingest point (HTTP delivery and query endpoints)."""
    from ..ingest.server import serve

    if port is not None:
        config.set("ingest.port", port)
    asyncio.run(serve(config))


@cli.command()
@click.option(
    "--source",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="JSONL file of events to deliver",
)
@pass_config
def produce(config: Config, source: Optional[Path]):
    """Run the reliable producer against a source file."""
    from ..capture.producer import build_producer

    producer = build_producer(config, source_path=source)
    try:
        asyncio.run(producer.run())
    finally:
        producer.sender.close()


@cli.command()
@click.option("--once", is_flag=True, help="Run a single poll and exit")
@pass_config
def consume(config: Config, once: bool):
    """Run the offset-tracked consumer."""
    from ..processing.server import ProcessingServer, serve

    if once:
        consumer = ProcessingServer(config).initialize()
        results = asyncio.run(consumer.process_once())
        for result in results:
            status = "[green]committed[/green]" if result.committed else "[red]pending[/red]"
            console.print(
                f"{result.partition}: {result.new_lines} new lines, "
                f"{len(result.deltas)} users, offset {result.offset} {status}"
            )
        return

    asyncio.run(serve(config))


@cli.command()
@pass_config
def status(config: Config):
    """Show partitions and how far the consumer has read them."""
    log_store = PartitionedLogStore(
        config.get_path("paths.log_dir"),
        window_seconds=config.ingest.window_seconds,
    )
    offsets = JSONOffsetStore(config.get_path("paths.offset_file")).load_offsets()

    table = Table(title="Partitions", show_header=True, header_style="bold magenta")
    table.add_column("Partition", style="cyan", no_wrap=True)
    table.add_column("Lines", justify="right")
    table.add_column("Offset", justify="right")
    table.add_column("Pending", justify="right")

    for path in log_store.list_partitions():
        lines = _count_lines(path)
        offset = offsets.get(path.name, 0)
        pending = max(lines - offset, 0)
        pending_str = f"[yellow]{pending}[/yellow]" if pending else "0"
        table.add_row(path.name, str(lines), str(offset), pending_str)

    if table.row_count == 0:
        console.print(f"[dim]No partitions in {log_store.log_dir}[/dim]")
        return
    console.print(table)


@cli.command()
@click.argument("user_id")
@pass_config
def ledger(config: Config, user_id: str):
    """Show the ledger rows for USER_ID."""
    client = SQLiteClient(str(config.get_path("paths.ledger_db")))
    client.initialize_database()
    create_schema(client)
    rows = LedgerStore(client).get_user_rows(user_id)

    if not rows:
        console.print(f"[yellow]No ledger entry for {user_id}[/yellow]")
        return

    table = Table(title=f"Ledger: {user_id}", show_header=True, header_style="bold magenta")
    table.add_column("User", style="cyan")
    table.add_column("Revenue", justify="right")
    table.add_column("Updated", style="dim")
    for row in rows:
        table.add_row(row["user_id"], f"{row['revenue']:.2f}", str(row["updated_at"]))
    console.print(table)


def _count_lines(path: Path) -> int:
    try:
        with open(path, "rb") as f:
            return sum(1 for line in f if line.endswith(b"\n"))
    except FileNotFoundError:
        return 0


def main():
    """Main entry point for the CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        if os.environ.get("REVLEDGER_DEBUG"):
            console.print_exception()
        else:
            console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
