"""
Query and command surface of the delegate tracker.

Every method normalizes its address argument first, so malformed input is
rejected with InvalidAddressException before any storage access.
"""

import asyncio
from typing import Any, Dict, List, Optional, Set

from web3 import Web3

from delegate_tracker.shared.address import normalize_address
from delegate_tracker.shared.config import DelegateConfig, Settings
from delegate_tracker.shared.exceptions import (
    AlreadyActiveException,
    ConfigurationException,
    NotFoundException,
    ProviderException,
)
from delegate_tracker.shared.logging import get_logger
from delegate_tracker.shared.results import Result
from delegate_tracker.shared.retry import RPC_RETRY_CONFIG, RetryConfig
from delegate_tracker.shared.services.http_client import aclose_async_client
from delegate_tracker.storage.backend import FileStorage
from delegate_tracker.storage.cache import TTLCache
from delegate_tracker.storage.store import PartitionedStore
from delegate_tracker.sync.models import SyncProgress
from delegate_tracker.sync.progress import SyncProgressTracker
from delegate_tracker.timeline.builder import IntegrityReport, TimelineBuilder
from delegate_tracker.timeline.models import (
    CurrentState,
    SyncMetadata,
    SyncResult,
    TimelineEntry,
)
from delegate_tracker.timeline.provider import (
    ChainDataProvider,
    Web3DelegationProvider,
)
from delegate_tracker.votes.aggregator import VoteAggregator
from delegate_tracker.votes.collectors import (
    GovernorVoteCollector,
    SnapshotVoteCollector,
    VoteCollector,
)
from delegate_tracker.votes.models import (
    VoteEntry,
    VotesData,
    VotesMetadata,
    VoteSource,
)

logger = get_logger(__name__)


class DelegateTrackerService:
    def __init__(
        self,
        store: PartitionedStore,
        tracker: SyncProgressTracker,
        builder: TimelineBuilder,
        aggregator: VoteAggregator,
        provider: Optional[ChainDataProvider] = None,
        collectors: Optional[List[VoteCollector]] = None,
        delegates: Optional[List[DelegateConfig]] = None,
        retry_config: RetryConfig = RPC_RETRY_CONFIG,
    ):
        self.store = store
        self.tracker = tracker
        self.builder = builder
        self.aggregator = aggregator
        self.provider = provider
        self.collectors = collectors or []
        self.delegates = delegates or []
        self.retry_config = retry_config
        self._votes_active: Set[str] = set()

    @classmethod
    def from_settings(cls, settings: Settings) -> "DelegateTrackerService":
        """Wire up the default file-backed service from settings."""
        store = PartitionedStore(
            FileStorage(settings.data_dir),
            TTLCache(default_ttl=settings.long_ttl),
            default_ttl=settings.long_ttl,
        )
        tracker = SyncProgressTracker(store, ttl=settings.short_ttl)

        provider: Optional[Web3DelegationProvider] = None
        w3: Optional[Web3] = None
        if settings.rpc_url:
            w3 = Web3(Web3.HTTPProvider(settings.rpc_url))
            if settings.token_address:
                provider = Web3DelegationProvider(
                    settings.rpc_url, settings.token_address, w3=w3
                )

        collectors: List[VoteCollector] = [
            SnapshotVoteCollector(
                url=settings.snapshot_url, space=settings.snapshot_space
            )
        ]
        if w3 is not None:
            governors = (
                (settings.core_governor, VoteSource.ONCHAIN_CORE),
                (settings.treasury_governor, VoteSource.ONCHAIN_TREASURY),
            )
            for governor, source in governors:
                if governor:
                    collectors.append(
                        GovernorVoteCollector(
                            w3,
                            governor,
                            source,
                            start_block=settings.governor_start_block,
                            chunk_size=settings.batch_size,
                        )
                    )

        builder = TimelineBuilder(
            store,
            provider or _UnconfiguredProvider(),
            tracker,
            start_block_for=settings.start_block_for,
            batch_size=settings.batch_size,
            short_ttl=settings.short_ttl,
            long_ttl=settings.long_ttl,
        )
        aggregator = VoteAggregator(
            store, short_ttl=settings.short_ttl, long_ttl=settings.long_ttl
        )
        return cls(
            store,
            tracker,
            builder,
            aggregator,
            provider=provider,
            collectors=collectors,
            delegates=settings.delegates,
        )

    async def close(self) -> None:
        await aclose_async_client()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_delegates(self) -> List[DelegateConfig]:
        return list(self.delegates)

    async def get_metadata(self, address: str) -> Optional[SyncMetadata]:
        return await self.builder.get_metadata(normalize_address(address))

    async def get_current_state(self, address: str) -> Optional[CurrentState]:
        return await self.builder.get_current_state(normalize_address(address))

    async def get_full_timeline(self, address: str) -> List[TimelineEntry]:
        return await self.builder.get_full_timeline(normalize_address(address))

    async def get_timeline_range(
        self, from_block: int, to_block: int, address: str
    ) -> List[TimelineEntry]:
        return await self.builder.get_timeline_range(
            normalize_address(address), from_block, to_block
        )

    async def get_sync_progress(self, address: str) -> SyncProgress:
        return await self.tracker.get(normalize_address(address))

    async def get_votes_data(self, address: str) -> Optional[VotesData]:
        return await self.aggregator.get_votes_data(normalize_address(address))

    async def get_votes_metadata(self, address: str) -> Optional[VotesMetadata]:
        return await self.aggregator.get_votes_metadata(normalize_address(address))

    async def get_votes_in_range(
        self,
        from_timestamp: Optional[int],
        to_timestamp: Optional[int],
        address: str,
    ) -> List[VoteEntry]:
        return await self.aggregator.query_range(
            normalize_address(address), from_timestamp, to_timestamp
        )

    async def get_voting_power_data(self, address: str) -> Dict[str, Any]:
        """
        Combined view: last synced block, full timeline and current delegators.

        Raises:
            NotFoundException: nothing has been synced for the address yet
        """
        address = normalize_address(address)
        metadata, state, timeline = await asyncio.gather(
            self.builder.get_metadata(address),
            self.builder.get_current_state(address),
            self.builder.get_full_timeline(address),
        )
        if metadata is None or state is None:
            raise NotFoundException(address, "voting power data")

        return {
            "last_synced_block": metadata.last_synced_block,
            "timeline": [entry.to_dict() for entry in timeline],
            "current_delegators": dict(state.delegators),
        }

    async def verify_integrity(self, address: str) -> IntegrityReport:
        return await self.builder.verify_integrity(normalize_address(address))

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def run_sync(
        self, address: str, target_block: Optional[int] = None
    ) -> SyncResult:
        """
        Sync the timeline up to `target_block` (the chain head when omitted).

        Raises:
            AlreadyActiveException: a sync is already running for the address
        """
        address = normalize_address(address)
        if self.tracker.is_active(address):
            raise AlreadyActiveException(address)

        if target_block is None:
            if self.provider is None:
                raise ConfigurationException(
                    "DT_RPC_URL and DT_TOKEN_ADDRESS are required to sync"
                )
            target_block = await self.retry_config.run(
                self.provider.get_latest_block, operation_name="get_latest_block"
            )

        return await self.builder.sync(address, to_block=target_block)

    async def run_votes_sync(self, address: str) -> VotesMetadata:
        """
        Collect votes from every configured source and merge them.

        Sources that succeed are merged even when others fail; the failures
        are then raised together as one ProviderException.
        """
        address = normalize_address(address)
        if not self.collectors:
            raise ConfigurationException("No vote sources are configured")
        if address in self._votes_active:
            raise AlreadyActiveException(address, kind="votes sync")

        self._votes_active.add(address)
        try:
            results = await asyncio.gather(
                *(self._collect(collector, address) for collector in self.collectors)
            )
            succeeded = [result for result in results if result.success]
            failures = [
                error
                for result in results
                if result.has_errors()
                for error in result.errors
            ]

            if succeeded:
                await self.aggregator.append(
                    address, [vote for result in succeeded for vote in result.data]
                )

            if failures:
                raise ProviderException(
                    f"Vote sources failed for {address}: "
                    + "; ".join(str(error) for error in failures)
                )
        finally:
            self._votes_active.discard(address)

        metadata = await self.aggregator.get_votes_metadata(address)
        return metadata if metadata is not None else VotesMetadata()

    @staticmethod
    async def _collect(
        collector: VoteCollector, address: str
    ) -> Result[List[VoteEntry]]:
        try:
            return Result.ok(await collector.collect(address))
        except ProviderException as e:
            logger.error(f"{collector.source.value} collector failed: {e}")
            return Result.fail_with_message(
                source=collector.source.value,
                message=str(e),
                context={"address": address},
                exception=e,
            )


class _UnconfiguredProvider(ChainDataProvider):
    """Stands in when no RPC is configured so queries still work."""

    async def get_latest_block(self) -> int:
        raise ConfigurationException(
            "DT_RPC_URL and DT_TOKEN_ADDRESS are required to sync"
        )

    async def get_delegation_events(self, delegate, from_block, to_block):
        raise ConfigurationException(
            "DT_RPC_URL and DT_TOKEN_ADDRESS are required to sync"
        )
