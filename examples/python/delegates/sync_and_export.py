#!/usr/bin/env python3
"""
Example: Sync a delegate's voting power and export the timeline.

This example demonstrates how to:
- Build the service from DT_* environment variables
- Run an incremental timeline sync up to the chain head
- Export the combined voting-power view to JSON

Usage:
    DT_RPC_URL=... DT_TOKEN_ADDRESS=... \
        python examples/python/delegates/sync_and_export.py 0xDelegate
"""

import asyncio
import json
import sys

from delegate_tracker import DelegateTrackerService, Settings
from delegate_tracker.shared.exceptions import ProviderException


async def main(address: str):
    service = DelegateTrackerService.from_settings(Settings.from_env())

    try:
        try:
            result = await service.run_sync(address)
            print(
                f"Synced blocks {result.from_block}-{result.to_block}: "
                f"{result.timeline_entries_added} new entries"
            )
        except ProviderException as e:
            # Committed batches are kept; the next run resumes after them
            print(f"Sync stopped early: {e}")

        data = await service.get_voting_power_data(address)
        output_file = f"voting_power_{address.lower()}.json"
        with open(output_file, "w") as f:
            json.dump(data, f, indent=2)

        print(f"Last synced block: {data['last_synced_block']}")
        print(f"Timeline entries: {len(data['timeline'])}")
        print(f"Saved to {output_file}")
    finally:
        await service.close()


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(1)
    asyncio.run(main(sys.argv[1]))
