"""
Vote collectors: one per venue a delegate can vote through.

Each collector returns every vote it can find for a voter; the aggregator
takes care of deduplication, so collectors can always re-fetch in full.
"""

import asyncio
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, List, Optional, Set, Tuple

import httpx
from eth_abi import decode
from eth_utils import to_checksum_address
from web3 import Web3

from delegate_tracker.shared.address import normalize_address
from delegate_tracker.shared.constants import (
    EventConstants,
    SnapshotConstants,
    SyncConstants,
)
from delegate_tracker.shared.exceptions import (
    InvalidAddressException,
    ProviderException,
)
from delegate_tracker.shared.logging import get_logger
from delegate_tracker.shared.retry import (
    HTTP_RETRY_CONFIG,
    RPC_RETRY_CONFIG,
    RetryConfig,
)
from delegate_tracker.shared.services.http_client import get_async_client
from delegate_tracker.storage.cache import LRUCache
from delegate_tracker.votes.models import VoteEntry, VoteSource

logger = get_logger(__name__)

SUPPORT_LABELS = {0: "against", 1: "for", 2: "abstain"}

# Snapshot reports voting power as a decimal token amount
SNAPSHOT_WEIGHT_DECIMALS = 18


class VoteCollector(ABC):
    source: VoteSource

    @abstractmethod
    async def collect(self, voter: str) -> List[VoteEntry]:
        """All votes cast by `voter` through this venue."""


def _votes_query(with_space: bool) -> str:
    space_filter = ", space: $space" if with_space else ""
    space_var = ", $space: String!" if with_space else ""
    return f"""
query Votes($voter: String!, $createdGt: Int!, $first: Int!{space_var}) {{
  votes(
    first: $first
    where: {{voter: $voter, created_gt: $createdGt{space_filter}}}
    orderBy: "created"
    orderDirection: asc
  ) {{
    id
    voter
    vp
    created
    choice
    reason
    proposal {{
      id
      title
    }}
  }}
}}
"""


class SnapshotVoteCollector(VoteCollector):
    """
    Off-chain votes from a Snapshot hub GraphQL endpoint.

    Pages are requested by `created`. The cursor steps back one second after
    each full page and votes are de-duplicated by id, so votes sharing a
    timestamp across a page boundary are not lost.
    """

    source = VoteSource.SNAPSHOT

    def __init__(
        self,
        url: str = SnapshotConstants.DEFAULT_URL,
        space: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        page_size: int = SnapshotConstants.PAGE_SIZE,
        retry_config: RetryConfig = HTTP_RETRY_CONFIG,
    ):
        self.url = url
        self.space = space
        self._client = client
        self.page_size = page_size
        self.retry_config = retry_config

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client or get_async_client()

    async def collect(self, voter: str) -> List[VoteEntry]:
        voter = normalize_address(voter)
        votes: List[VoteEntry] = []
        seen_ids: Set[str] = set()
        created_gt = 0

        while True:
            page = await self.retry_config.run(
                self._fetch_page, voter, created_gt, operation_name="snapshot_votes"
            )
            added = 0
            for item in page:
                vote_id = item.get("id")
                if vote_id is not None:
                    if vote_id in seen_ids:
                        continue
                    seen_ids.add(vote_id)
                votes.append(self._to_entry(item))
                added += 1

            if len(page) < self.page_size:
                break
            if added == 0:
                logger.warning(
                    f"Snapshot returned a full page of already seen votes for "
                    f"{voter} after {created_gt}; stopping"
                )
                break

            # Step back one second so votes sharing the last timestamp are re-read
            last_created = self._created(page[-1])
            next_cursor = last_created - 1
            if next_cursor <= created_gt:
                next_cursor = last_created
            created_gt = next_cursor

        logger.info(f"Fetched {len(votes)} Snapshot votes for {voter}")
        return votes

    async def _fetch_page(
        self, voter: str, created_gt: int
    ) -> List[Dict[str, Any]]:
        variables: Dict[str, Any] = {
            "voter": to_checksum_address(voter),
            "createdGt": created_gt,
            "first": self.page_size,
        }
        if self.space:
            variables["space"] = self.space

        try:
            response = await self.client.post(
                self.url,
                json={
                    "query": _votes_query(bool(self.space)),
                    "variables": variables,
                },
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderException(
                f"Snapshot request failed: {e}", source=self.source.value
            ) from e

        if payload.get("errors"):
            raise ProviderException(
                f"Snapshot GraphQL errors: {payload['errors']}",
                source=self.source.value,
            )
        return (payload.get("data") or {}).get("votes") or []

    def _created(self, item: Dict[str, Any]) -> int:
        try:
            return int(item["created"])
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderException(
                f"Malformed Snapshot vote {item.get('id')!r}: {e!r}",
                source=self.source.value,
            ) from e

    def _to_entry(self, item: Dict[str, Any]) -> VoteEntry:
        """Raises ProviderException when the hub returns an unusable vote."""
        try:
            proposal = item.get("proposal") or {}
            weight = Decimal(str(item.get("vp") or 0)) * (
                Decimal(10) ** SNAPSHOT_WEIGHT_DECIMALS
            )
            return VoteEntry(
                proposal_id=str(proposal.get("id") or item["id"]),
                source=self.source,
                snapshot_timestamp=int(item["created"]),
                choice=item.get("choice"),
                weight=int(weight),
                voter=normalize_address(item["voter"]),
                proposal_title=proposal.get("title"),
                reason=item.get("reason") or None,
            )
        except (
            KeyError,
            TypeError,
            ValueError,
            ArithmeticError,
            InvalidAddressException,
        ) as e:
            raise ProviderException(
                f"Malformed Snapshot vote {item.get('id')!r}: {e!r}",
                source=self.source.value,
            ) from e


class GovernorVoteCollector(VoteCollector):
    """
    On-chain votes read from a governor contract's VoteCast logs.

    The range from `start_block` to the chain head is read in chunks of
    `chunk_size` blocks, at most `max_concurrency` chunks at a time.
    """

    def __init__(
        self,
        w3: Web3,
        governor_address: str,
        source: VoteSource,
        start_block: int = 0,
        chunk_size: int = SyncConstants.DEFAULT_BATCH_SIZE,
        max_concurrency: int = 4,
        block_cache_size: int = SyncConstants.BLOCK_TIMESTAMP_CACHE_SIZE,
        retry_config: RetryConfig = RPC_RETRY_CONFIG,
    ):
        if source == VoteSource.SNAPSHOT:
            raise ValueError("GovernorVoteCollector only handles on-chain sources")
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self.w3 = w3
        self.governor_address = normalize_address(governor_address)
        self.source = source
        self.start_block = start_block
        self.chunk_size = chunk_size
        self.max_concurrency = max_concurrency
        self.retry_config = retry_config
        self._block_timestamps: LRUCache[int, int] = LRUCache(block_cache_size)

    async def collect(self, voter: str) -> List[VoteEntry]:
        voter = normalize_address(voter)
        try:
            latest = await self.retry_config.run(
                asyncio.to_thread,
                lambda: self.w3.eth.block_number,
                operation_name=f"{self.source.value}_latest_block",
            )
            votes = await self._fetch_chunks(voter, int(latest))
        except ProviderException:
            raise
        except Exception as e:
            raise ProviderException(
                f"Failed to read VoteCast logs from {self.governor_address}: {e}",
                source=self.source.value,
            ) from e

        logger.info(f"Fetched {len(votes)} {self.source.value} votes for {voter}")
        return votes

    def _chunks(self, end_block: int) -> List[Tuple[int, int]]:
        return [
            (lo, min(lo + self.chunk_size - 1, end_block))
            for lo in range(self.start_block, end_block + 1, self.chunk_size)
        ]

    async def _fetch_chunks(self, voter: str, end_block: int) -> List[VoteEntry]:
        semaphore = asyncio.Semaphore(self.max_concurrency)
        tasks = [
            asyncio.create_task(self._fetch_chunk(voter, lo, hi, semaphore))
            for lo, hi in self._chunks(end_block)
        ]
        try:
            chunks = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise
        return [vote for chunk in chunks for vote in chunk]

    async def _fetch_chunk(
        self,
        voter: str,
        from_block: int,
        to_block: int,
        semaphore: asyncio.Semaphore,
    ) -> List[VoteEntry]:
        async with semaphore:
            return await self.retry_config.run(
                asyncio.to_thread,
                self._fetch_votes,
                voter,
                from_block,
                to_block,
                operation_name=f"{self.source.value}_votes",
            )

    def _fetch_votes(
        self, voter: str, from_block: int, to_block: int
    ) -> List[VoteEntry]:
        logs = self.w3.eth.get_logs(
            {
                "fromBlock": from_block,
                "toBlock": to_block,
                "address": Web3.to_checksum_address(self.governor_address),
                "topics": [
                    EventConstants.VOTE_CAST,
                    "0x" + "0" * 24 + voter[2:],
                ],
            }
        )
        logger.debug(
            f"{len(logs)} VoteCast logs for {voter} in {from_block}-{to_block}"
        )
        return [self._decode_vote(log, voter) for log in logs]

    def _decode_vote(self, log: Dict[str, Any], voter: str) -> VoteEntry:
        try:
            proposal_id, support, weight, reason = decode(
                ["uint256", "uint8", "uint256", "string"], bytes(log["data"])
            )
        except Exception as e:
            raise ValueError(
                f"Error decoding VoteCast log: {e}. Raw data: {log['data']!r}"
            )
        block_number = log["blockNumber"]
        return VoteEntry(
            proposal_id=str(proposal_id),
            source=self.source,
            snapshot_timestamp=self._get_block_timestamp(block_number),
            choice=SUPPORT_LABELS.get(support, str(support)),
            weight=weight,
            voter=voter,
            reason=reason or None,
            transaction_hash=Web3.to_hex(log["transactionHash"]),
            block_number=block_number,
        )

    def _get_block_timestamp(self, block_number: int) -> int:
        timestamp = self._block_timestamps.get(block_number)
        if timestamp is None:
            timestamp = int(self.w3.eth.get_block(block_number)["timestamp"])
            self._block_timestamps.set(block_number, timestamp)
        return timestamp
