#!/usr/bin/env python3
"""
Unified CLI for the delegate tracker.

Examples:
  - Timeline
    delegate-tracker sync --address 0x... [--to-block 19000000]
    delegate-tracker progress --address 0x...
    delegate-tracker metadata --address 0x...
    delegate-tracker timeline --address 0x... [--from-block 1 --to-block 100]
    delegate-tracker verify --address 0x...

  - Votes
    delegate-tracker sync-votes --address 0x...
    delegate-tracker votes --address 0x... [--from 1700000000 --to 1710000000]

  - Configured delegates
    delegate-tracker sync-all
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from rich.markup import escape
from rich.table import Table

from delegate_tracker.service import DelegateTrackerService
from delegate_tracker.shared.config import Settings
from delegate_tracker.shared.exceptions import (
    NonRetryableException,
    NotFoundException,
    RetryableException,
)
from delegate_tracker.shared.logging import set_log_level
from delegate_tracker.utils.formatters import (
    console,
    format_address,
    format_duration,
    format_timestamp,
    format_voting_power,
)


async def cmd_sync(service: DelegateTrackerService, args: argparse.Namespace) -> None:
    result = await service.run_sync(args.address, target_block=args.to_block)
    console.print(
        f"[green]Synced blocks {result.from_block} -> {result.to_block}[/green]: "
        f"{result.events_processed} events, "
        f"{result.timeline_entries_added} new entries, "
        f"{result.current_delegators} active delegators"
    )


async def cmd_sync_all(
    service: DelegateTrackerService, args: argparse.Namespace
) -> None:
    delegates = service.list_delegates()
    if not delegates:
        console.print("[yellow]No delegates configured (DT_CONFIG_FILE)[/yellow]")
        return

    # Different addresses sync independently
    results = await asyncio.gather(
        *(service.run_sync(d.address, target_block=args.to_block) for d in delegates),
        return_exceptions=True,
    )
    for delegate, result in zip(delegates, results):
        label = delegate.name or format_address(delegate.address)
        if isinstance(result, BaseException):
            console.print(f"[red]{label}: {escape(str(result))}[/red]")
        else:
            console.print(
                f"[green]{label}[/green]: {result.timeline_entries_added} new entries"
            )


async def cmd_progress(
    service: DelegateTrackerService, args: argparse.Namespace
) -> None:
    progress = await service.get_sync_progress(args.address)
    if not progress.is_active:
        console.print("No active sync")
        return
    console.print(
        f"Block {progress.current_block}/{progress.target_block} "
        f"({progress.percent_complete:.1%}), "
        f"{progress.events_processed} events, "
        f"ETA {format_duration(progress.estimated_time_remaining)}"
    )


async def cmd_metadata(
    service: DelegateTrackerService, args: argparse.Namespace
) -> None:
    metadata = await service.get_metadata(args.address)
    if metadata is None:
        raise NotFoundException(args.address, "metadata")

    table = Table(title=f"Delegate {format_address(args.address)}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", justify="right", style="magenta")
    table.add_row("Last synced block", str(metadata.last_synced_block))
    table.add_row("Last block time", format_timestamp(metadata.last_block_timestamp))
    table.add_row("Last sync", format_timestamp(metadata.last_sync_timestamp))
    table.add_row("Voting power", format_voting_power(metadata.total_voting_power))
    table.add_row("Timeline entries", str(metadata.total_timeline_entries))
    console.print(table)


async def cmd_timeline(
    service: DelegateTrackerService, args: argparse.Namespace
) -> None:
    if args.from_block is not None and args.to_block is not None:
        entries = await service.get_timeline_range(
            args.from_block, args.to_block, args.address
        )
    else:
        entries = await service.get_full_timeline(args.address)

    table = Table(title=f"Timeline for {format_address(args.address)}")
    table.add_column("Block", justify="right", style="cyan")
    table.add_column("Time", style="cyan")
    table.add_column("Delegator", style="green")
    table.add_column("Delta", justify="right", style="magenta")
    table.add_column("Total", justify="right", style="magenta")
    for entry in entries[-args.limit :] if args.limit else entries:
        table.add_row(
            str(entry.block_number),
            format_timestamp(entry.block_timestamp),
            format_address(entry.delegator),
            format_voting_power(entry.voting_power_delta),
            format_voting_power(entry.resulting_total_voting_power),
        )
    console.print(table)


async def cmd_verify(
    service: DelegateTrackerService, args: argparse.Namespace
) -> None:
    report = await service.verify_integrity(args.address)
    status = "[green]OK[/green]" if report.ok else "[red]MISMATCH[/red]"
    console.print(
        f"{status} metadata={report.metadata_total} state={report.state_total} "
        f"replayed={report.replayed_total} entries={report.timeline_entries}"
    )
    for delegator in report.mismatched_delegators:
        console.print(f"  [red]{delegator}[/red]")
    if not report.ok:
        sys.exit(1)


async def cmd_sync_votes(
    service: DelegateTrackerService, args: argparse.Namespace
) -> None:
    metadata = await service.run_votes_sync(args.address)
    console.print(
        f"[green]{metadata.total_votes} votes[/green] "
        f"(snapshot {metadata.snapshot_votes}, "
        f"core {metadata.onchain_core_votes}, "
        f"treasury {metadata.onchain_treasury_votes})"
    )


async def cmd_votes(service: DelegateTrackerService, args: argparse.Namespace) -> None:
    votes = await service.get_votes_in_range(
        args.from_timestamp, args.to_timestamp, args.address
    )
    table = Table(title=f"Votes for {format_address(args.address)}")
    table.add_column("Time", style="cyan")
    table.add_column("Source", style="green")
    table.add_column("Proposal", style="white")
    table.add_column("Choice", style="yellow")
    table.add_column("Weight", justify="right", style="magenta")
    for vote in votes:
        table.add_row(
            format_timestamp(vote.snapshot_timestamp),
            vote.source.value,
            vote.proposal_title or format_address(vote.proposal_id, length=16),
            str(vote.choice),
            format_voting_power(vote.weight),
        )
    console.print(table)


COMMANDS = {
    "sync": cmd_sync,
    "sync-all": cmd_sync_all,
    "progress": cmd_progress,
    "metadata": cmd_metadata,
    "timeline": cmd_timeline,
    "verify": cmd_verify,
    "sync-votes": cmd_sync_votes,
    "votes": cmd_votes,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="delegate-tracker",
        description="Track a delegate's voting power and votes",
    )
    parser.add_argument(
        "--log-level", default=None, help="DEBUG, INFO, WARNING (default: DT_LOG_LEVEL)"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    def with_address(name: str, help_text: str) -> argparse.ArgumentParser:
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--address", required=True, help="Delegate address")
        return p

    p = with_address("sync", "Sync the voting power timeline")
    p.add_argument("--to-block", type=int, default=None, help="Default: latest")

    p = sub.add_parser("sync-all", help="Sync every configured delegate")
    p.add_argument("--to-block", type=int, default=None, help="Default: latest")

    with_address("progress", "Show sync progress")
    with_address("metadata", "Show sync metadata")
    with_address("verify", "Replay the timeline and check stored state")
    with_address("sync-votes", "Collect votes from all sources")

    p = with_address("timeline", "Show timeline entries")
    p.add_argument("--from-block", type=int, default=None)
    p.add_argument("--to-block", type=int, default=None)
    p.add_argument("--limit", type=int, default=50, help="0 for all")

    p = with_address("votes", "Show votes")
    p.add_argument("--from", dest="from_timestamp", type=int, default=None)
    p.add_argument("--to", dest="to_timestamp", type=int, default=None)

    return parser


async def run(args: argparse.Namespace) -> None:
    service = DelegateTrackerService.from_settings(Settings.from_env())
    try:
        await COMMANDS[args.command](service, args)
    finally:
        await service.close()


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    if args.log_level:
        set_log_level(args.log_level)
    try:
        asyncio.run(run(args))
    except (NonRetryableException, RetryableException) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
