#!/usr/bin/env python3
"""
Example: Collect a delegate's votes and summarize them per source.

Usage:
    DT_SNAPSHOT_SPACE=example.eth \
        python examples/python/delegates/votes_by_source.py 0xDelegate
"""

import asyncio
import sys
from collections import Counter

from delegate_tracker import DelegateTrackerService, Settings
from delegate_tracker.shared.exceptions import ProviderException
from delegate_tracker.utils import format_timestamp, format_voting_power


async def main(address: str):
    service = DelegateTrackerService.from_settings(Settings.from_env())

    try:
        try:
            await service.run_votes_sync(address)
        except ProviderException as e:
            print(f"Some sources failed, showing what was merged: {e}")

        votes = await service.get_votes_in_range(None, None, address)
        by_source = Counter(vote.source.value for vote in votes)
        for source, count in sorted(by_source.items()):
            print(f"{source}: {count} votes")

        for vote in votes[-10:]:
            print(
                f"{format_timestamp(vote.snapshot_timestamp)}  "
                f"{vote.source.value:<17} {vote.choice!s:<8} "
                f"{format_voting_power(vote.weight)}  "
                f"{vote.proposal_title or vote.proposal_id}"
            )
    finally:
        await service.close()


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(1)
    asyncio.run(main(sys.argv[1]))
