"""
Vote aggregator: one deduplicated, time-ordered vote ledger per address.

Batches from any source are merged on (proposal_id, source). A newer entry
for the same key replaces the stored one, which lets a re-synced source push
late weight corrections. The merged ledger is stable-sorted by
snapshot_timestamp and the rollup counters are recomputed from it on every
append.
"""

import time
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from delegate_tracker.shared.address import normalize_address
from delegate_tracker.shared.constants import StorageConstants
from delegate_tracker.shared.logging import get_logger
from delegate_tracker.storage.store import PartitionedStore, Record
from delegate_tracker.votes.models import VoteEntry, VotesData, VotesMetadata

logger = get_logger(__name__)


def merge_votes(
    existing: Iterable[VoteEntry], incoming: Iterable[VoteEntry]
) -> List[VoteEntry]:
    """Last write wins per key; result is stable-sorted by snapshot_timestamp."""
    merged: Dict[Tuple[str, str], VoteEntry] = {}
    for vote in existing:
        merged[vote.key] = vote
    for vote in incoming:
        # Replacing a value keeps the key's original insertion slot
        merged[vote.key] = vote
    return sorted(merged.values(), key=lambda vote: vote.snapshot_timestamp)


class VoteAggregator:
    def __init__(
        self,
        store: PartitionedStore,
        short_ttl: float = StorageConstants.SHORT_TTL,
        long_ttl: float = StorageConstants.LONG_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self._clock = clock
        self.votes: Record[VotesData] = Record(
            store,
            StorageConstants.VOTES_DATA_FILE,
            decode=VotesData.from_dict,
            encode=lambda data: data.to_dict(),
            ttl=long_ttl,
        )
        self.metadata: Record[VotesMetadata] = Record(
            store,
            StorageConstants.VOTES_METADATA_FILE,
            decode=VotesMetadata.from_dict,
            encode=lambda metadata: metadata.to_dict(),
            ttl=short_ttl,
        )

    async def get_votes_data(self, address: str) -> Optional[VotesData]:
        return await self.votes.load(normalize_address(address))

    async def get_votes_metadata(self, address: str) -> Optional[VotesMetadata]:
        return await self.metadata.load(normalize_address(address))

    async def append(
        self, address: str, new_votes: Iterable[VoteEntry]
    ) -> VotesData:
        address = normalize_address(address)
        new_votes = list(new_votes)
        existing = await self.votes.load(address)

        merged = merge_votes(existing.votes if existing else [], new_votes)
        data = VotesData(votes=merged)
        await self.votes.save(data, address)
        await self.metadata.save(
            VotesMetadata.from_votes(merged, last_sync_timestamp=self._clock()),
            address,
        )

        logger.info(
            f"Merged {len(new_votes)} votes for {address}; "
            f"ledger now holds {len(merged)}"
        )
        return data

    async def query_range(
        self,
        address: str,
        from_timestamp: Optional[int] = None,
        to_timestamp: Optional[int] = None,
    ) -> List[VoteEntry]:
        """Votes with from <= snapshot_timestamp <= to; None leaves a side open."""
        data = await self.get_votes_data(address)
        if data is None:
            return []
        return [
            vote
            for vote in data.votes
            if (from_timestamp is None or vote.snapshot_timestamp >= from_timestamp)
            and (to_timestamp is None or vote.snapshot_timestamp <= to_timestamp)
        ]
