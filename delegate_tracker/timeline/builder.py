"""
Timeline builder: replays delegation events into a per-address history.

A run covers [start, to_block] in windows of `batch_size` blocks. Each window
is committed as timeline -> current state -> metadata; the metadata write is
the commit marker, so a crash between writes leaves at most one uncommitted
window behind. The next run truncates that tail before resuming strictly
after `last_synced_block`.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from delegate_tracker.shared.address import normalize_address
from delegate_tracker.shared.constants import StorageConstants, SyncConstants
from delegate_tracker.shared.exceptions import (
    NonRetryableException,
    ProviderException,
    StorageException,
)
from delegate_tracker.shared.logging import get_logger
from delegate_tracker.shared.retry import RPC_RETRY_CONFIG, RetryConfig
from delegate_tracker.storage.store import PartitionedStore, Record
from delegate_tracker.sync.progress import SyncProgressTracker
from delegate_tracker.timeline.models import (
    CurrentState,
    DelegationEvent,
    SyncMetadata,
    SyncResult,
    TimelineEntry,
    timeline_from_list,
    timeline_to_list,
)
from delegate_tracker.timeline.provider import ChainDataProvider

logger = get_logger(__name__)


@dataclass
class IntegrityReport:
    """Outcome of replaying the full timeline against stored state."""

    address: str
    ok: bool
    metadata_total: int
    state_total: int
    replayed_total: int
    timeline_entries: int
    mismatched_delegators: List[str] = field(default_factory=list)


def replay_timeline(entries: Iterable[TimelineEntry]) -> CurrentState:
    """Rebuild balances from scratch. Integrity checks and recovery only."""
    balances: Dict[str, int] = {}
    for entry in entries:
        balances[entry.delegator] = (
            balances.get(entry.delegator, 0) + entry.voting_power_delta
        )
    return CurrentState(delegators=balances)


class TimelineBuilder:
    def __init__(
        self,
        store: PartitionedStore,
        provider: ChainDataProvider,
        tracker: SyncProgressTracker,
        start_block_for: Optional[Callable[[str], int]] = None,
        batch_size: int = SyncConstants.DEFAULT_BATCH_SIZE,
        short_ttl: float = StorageConstants.SHORT_TTL,
        long_ttl: float = StorageConstants.LONG_TTL,
        retry_config: RetryConfig = RPC_RETRY_CONFIG,
        clock: Callable[[], float] = time.time,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self.provider = provider
        self.tracker = tracker
        self.batch_size = batch_size
        self.retry_config = retry_config
        self._start_block_for = start_block_for or (
            lambda _address: SyncConstants.DEFAULT_START_BLOCK
        )
        self._clock = clock

        self.metadata: Record[SyncMetadata] = Record(
            store,
            StorageConstants.METADATA_FILE,
            decode=SyncMetadata.from_dict,
            encode=lambda metadata: metadata.to_dict(),
            ttl=short_ttl,
        )
        self.current_state: Record[CurrentState] = Record(
            store,
            StorageConstants.CURRENT_STATE_FILE,
            decode=CurrentState.from_dict,
            encode=lambda state: state.to_dict(),
            ttl=long_ttl,
        )
        self.timeline: Record[List[TimelineEntry]] = Record(
            store,
            StorageConstants.TIMELINE_FILE,
            decode=timeline_from_list,
            encode=timeline_to_list,
            ttl=long_ttl,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_metadata(self, address: str) -> Optional[SyncMetadata]:
        return await self.metadata.load(normalize_address(address))

    async def get_current_state(self, address: str) -> Optional[CurrentState]:
        return await self.current_state.load(normalize_address(address))

    async def get_full_timeline(self, address: str) -> List[TimelineEntry]:
        return await self.timeline.load(normalize_address(address)) or []

    async def get_timeline_range(
        self, address: str, from_block: int, to_block: int
    ) -> List[TimelineEntry]:
        """Entries with from_block <= block_number <= to_block."""
        return [
            entry
            for entry in await self.get_full_timeline(address)
            if from_block <= entry.block_number <= to_block
        ]

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def resume_block(self, address: str, metadata: Optional[SyncMetadata]) -> int:
        if metadata is None:
            return self._start_block_for(address)
        return metadata.last_synced_block + 1

    async def sync(
        self,
        address: str,
        to_block: int,
        from_block: Optional[int] = None,
    ) -> SyncResult:
        """
        Ingest delegation events up to `to_block` (inclusive).

        Without `from_block` the run resumes right after the last committed
        block. An explicit `from_block` at or before that point is moved
        forward; committed blocks are never processed twice.

        Raises:
            AlreadyActiveException: a run is already active for the address
            ProviderException: the chain-data provider failed (retryable)
            StorageException: a durable read or write failed
        """
        address = normalize_address(address)
        provisional = self._select_start(
            address, await self.metadata.load(address), from_block
        )
        await self.tracker.start(address, provisional, to_block)

        try:
            # Re-read under ownership; a run that finished in between moves the resume point
            metadata = await self.metadata.load(address)
            start = self._select_start(address, metadata, from_block)
            await self.tracker.set_start_block(address, start)
            state, timeline = await self._recover(address, metadata)
            result = await self._run_windows(
                address, start, to_block, metadata, state, timeline
            )
        except BaseException as e:
            try:
                await self.tracker.finish(address, error=e)
            except StorageException as finish_error:
                logger.error(
                    f"Could not reset progress for {address}: {finish_error}"
                )
            raise

        await self.tracker.finish(address)
        return result

    def _select_start(
        self,
        address: str,
        metadata: Optional[SyncMetadata],
        from_block: Optional[int],
    ) -> int:
        resume = self.resume_block(address, metadata)
        if from_block is None:
            return resume
        if metadata is not None and from_block > resume:
            logger.warning(
                f"Requested start {from_block} for {address} skips blocks "
                f"{resume}-{from_block - 1}"
            )
        return from_block if metadata is None else max(from_block, resume)

    async def _recover(
        self, address: str, metadata: Optional[SyncMetadata]
    ) -> Tuple[CurrentState, List[TimelineEntry]]:
        """Drop anything written after the last commit marker."""
        committed_entries = metadata.total_timeline_entries if metadata else 0
        committed_total = metadata.total_voting_power if metadata else 0

        timeline = await self.timeline.load(address) or []
        state = await self.current_state.load(address) or CurrentState()

        if len(timeline) < committed_entries:
            raise StorageException(
                f"Timeline for {address} has {len(timeline)} entries, "
                f"metadata expects {committed_entries}",
                key=StorageConstants.TIMELINE_FILE,
                address=address,
            )

        truncated = len(timeline) > committed_entries
        if truncated:
            logger.warning(
                f"Discarding {len(timeline) - committed_entries} uncommitted "
                f"timeline entries for {address}"
            )
            timeline = timeline[:committed_entries]

        if truncated or state.total != committed_total:
            rebuilt = replay_timeline(timeline)
            if rebuilt.total != committed_total:
                raise StorageException(
                    f"Timeline for {address} replays to {rebuilt.total}, "
                    f"metadata records {committed_total}",
                    key=StorageConstants.TIMELINE_FILE,
                    address=address,
                )
            logger.warning(f"Rebuilt current state for {address} from timeline")
            state = rebuilt
            await self.timeline.save(timeline, address)
            await self.current_state.save(state, address)

        return state, timeline

    def _windows(self, start: int, end: int) -> List[Tuple[int, int]]:
        return [
            (lo, min(lo + self.batch_size - 1, end))
            for lo in range(start, end + 1, self.batch_size)
        ]

    async def _run_windows(
        self,
        address: str,
        start: int,
        end: int,
        metadata: Optional[SyncMetadata],
        state: CurrentState,
        timeline: List[TimelineEntry],
    ) -> SyncResult:
        windows = self._windows(start, end)
        events_processed = 0
        entries_added = 0
        running_total = metadata.total_voting_power if metadata else 0
        last_block_timestamp = metadata.last_block_timestamp if metadata else 0

        if not windows:
            logger.info(f"{address} is already synced to block {end}")

        pending: Optional[asyncio.Task] = None
        if windows:
            pending = asyncio.create_task(self._fetch(address, *windows[0]))

        try:
            for index, (lo, hi) in enumerate(windows):
                task, pending = pending, None
                events = await task
                if index + 1 < len(windows):
                    # Fetch ahead; commits below stay strictly in block order
                    pending = asyncio.create_task(
                        self._fetch(address, *windows[index + 1])
                    )

                window_events = self._order_window(events, lo, hi)
                state = state.copy()
                new_entries, running_total = self._apply(
                    address, window_events, state, running_total
                )

                if new_entries:
                    timeline = timeline + new_entries
                    last_block_timestamp = new_entries[-1].block_timestamp
                    await self.timeline.save(timeline, address)
                    await self.current_state.save(state, address)

                await self.metadata.save(
                    SyncMetadata(
                        last_synced_block=hi,
                        last_block_timestamp=last_block_timestamp,
                        last_sync_timestamp=self._clock(),
                        total_voting_power=running_total,
                        total_timeline_entries=len(timeline),
                    ),
                    address,
                )

                events_processed += len(window_events)
                entries_added += len(new_entries)
                logger.debug(
                    f"Committed {address} blocks {lo}-{hi}: "
                    f"{len(new_entries)} entries, total {running_total}"
                )
                await self.tracker.update(address, hi, events_processed)
        finally:
            if pending is not None:
                await self._discard(pending)

        logger.info(
            f"Synced {address} blocks {start}-{end}: {events_processed} events, "
            f"{entries_added} new timeline entries"
        )
        return SyncResult(
            events_processed=events_processed,
            timeline_entries_added=entries_added,
            current_delegators=state.active_delegators,
            from_block=start,
            to_block=end,
        )

    async def _fetch(
        self, address: str, from_block: int, to_block: int
    ) -> List[DelegationEvent]:
        try:
            return await self.retry_config.run(
                self.provider.get_delegation_events,
                address,
                from_block,
                to_block,
                operation_name=f"get_delegation_events[{from_block}-{to_block}]",
            )
        except (ProviderException, NonRetryableException):
            raise
        except Exception as e:
            raise ProviderException(
                f"Provider failed for blocks {from_block}-{to_block}: {e}",
                source="chain",
            ) from e

    @staticmethod
    async def _discard(task: asyncio.Task) -> None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug(f"Discarded prefetch failed: {e}")

    @staticmethod
    def _order_window(
        events: Iterable[DelegationEvent], lo: int, hi: int
    ) -> List[DelegationEvent]:
        """Events inside the window, by (block, log index), duplicates dropped."""
        seen = set()
        ordered = []
        for event in sorted(events, key=lambda e: e.position):
            if not lo <= event.block_number <= hi or event.position in seen:
                continue
            seen.add(event.position)
            ordered.append(event)
        return ordered

    @staticmethod
    def _apply(
        address: str,
        events: List[DelegationEvent],
        state: CurrentState,
        running_total: int,
    ) -> Tuple[List[TimelineEntry], int]:
        entries = []
        for event in events:
            delegator = normalize_address(event.delegator)
            balance = state.delegators.get(delegator, 0)
            delta = event.voting_power_delta

            if balance + delta < 0:
                logger.warning(
                    f"Delta {delta} for {delegator} on {address} at block "
                    f"{event.block_number} exceeds balance {balance}; clamping"
                )
                delta = -balance

            state.delegators[delegator] = balance + delta
            running_total += delta
            entries.append(
                TimelineEntry(
                    block_number=event.block_number,
                    block_timestamp=event.block_timestamp,
                    delegator=delegator,
                    voting_power_delta=delta,
                    resulting_total_voting_power=running_total,
                    log_index=event.log_index,
                    transaction_hash=event.transaction_hash,
                )
            )
        return entries, running_total

    # ------------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------------

    async def verify_integrity(self, address: str) -> IntegrityReport:
        address = normalize_address(address)
        metadata = await self.metadata.load(address)
        state = await self.current_state.load(address) or CurrentState()
        timeline = await self.timeline.load(address) or []

        replayed = replay_timeline(timeline)
        mismatched = sorted(
            delegator
            for delegator in set(replayed.delegators) | set(state.delegators)
            if replayed.delegators.get(delegator, 0)
            != state.delegators.get(delegator, 0)
        )
        metadata_total = metadata.total_voting_power if metadata else 0
        expected_entries = metadata.total_timeline_entries if metadata else 0

        ok = (
            not mismatched
            and replayed.total == metadata_total
            and state.total == metadata_total
            and len(timeline) == expected_entries
            and (
                not timeline
                or timeline[-1].resulting_total_voting_power == metadata_total
            )
        )
        if not ok:
            logger.warning(f"Integrity check failed for {address}")

        return IntegrityReport(
            address=address,
            ok=ok,
            metadata_total=metadata_total,
            state_total=state.total,
            replayed_total=replayed.total,
            timeline_entries=len(timeline),
            mismatched_delegators=mismatched,
        )
