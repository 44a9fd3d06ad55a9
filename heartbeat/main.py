"""Entry point for the heartbeat monitor."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import ConfigError, load_config, settings
from .scheduler import Heartbeat
from .store import open_store

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)


def run_heartbeat(config_path: str, once: bool = False) -> None:
    """Build the heartbeat from config and run it until interrupted."""
    config = load_config(config_path)
    store = open_store(settings.store_url)
    heartbeat = Heartbeat(config, store)

    console.print(Panel(
        f"{len(heartbeat.jobs)} jobs · notify: {', '.join(heartbeat.dispatcher.channels) or 'none'}"
        f" · interval {heartbeat.interval_ms}ms",
        title="Heartbeat", style="bold green",
    ))
    try:
        asyncio.run(heartbeat.run_forever(max_cycles=1 if once else None))
    except KeyboardInterrupt:
        console.print("[dim]Stopped.[/dim]")
    finally:
        store.close()


def check_config(config_path: str) -> None:
    """Validate the config and list what would run."""
    config = load_config(config_path)

    table = Table(title=f"Probes in {config_path}")
    table.add_column("Type")
    table.add_column("Target")
    heartbeat = Heartbeat(config, sink=_NullStore())
    for job in heartbeat.jobs:
        for probe in job.probes:
            table.add_row(job.name, probe.target)
    console.print(table)
    console.print(f"Notify channels: {', '.join(heartbeat.dispatcher.channels) or 'none'}")
    console.print(f"Interval: {heartbeat.interval_ms}ms")


def prune(days: int) -> None:
    store = open_store(settings.store_url)
    try:
        removed = store.cleanup_old(days=days)
    finally:
        store.close()
    console.print(f"Removed {removed} results older than {days} days")


class _NullStore:
    def insert(self, records) -> None:
        pass

    def close(self) -> None:
        pass


def main() -> None:
    parser = argparse.ArgumentParser(description="Heartbeat uptime / latency monitor")
    sub = parser.add_subparsers(dest="command")

    run_parser = sub.add_parser("run", help="Run the heartbeat loop")
    run_parser.add_argument("--config", default=settings.heartbeat_config, help="Path to heartbeat YAML")
    run_parser.add_argument("--once", action="store_true", help="Run a single cycle and exit")

    check_parser = sub.add_parser("check", help="Validate the config and list probes")
    check_parser.add_argument("--config", default=settings.heartbeat_config, help="Path to heartbeat YAML")

    prune_parser = sub.add_parser("prune", help="Delete stored results older than N days")
    prune_parser.add_argument("--days", type=int, default=30)

    args = parser.parse_args()

    try:
        if args.command == "run":
            run_heartbeat(args.config, once=args.once)
        elif args.command == "check":
            check_config(args.config)
        elif args.command == "prune":
            prune(args.days)
        else:
            parser.print_help()
            sys.exit(1)
    except ConfigError as e:
        console.print(f"[bold red]Config error:[/bold red] {e}")
        sys.exit(2)


if __name__ == "__main__":
    main()
