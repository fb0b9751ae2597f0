"""
Per-address sync progress tracking.

Lifecycle: Idle -> Active -> (Completed | Failed) -> Idle. Only one run per
address may be Active at a time in this process. Every transition is
checkpointed through the store, so pollers read the last saved snapshot and
never wait on the running task.
"""

import time
from typing import Callable, Dict, Optional

from delegate_tracker.shared.address import normalize_address
from delegate_tracker.shared.constants import StorageConstants
from delegate_tracker.shared.exceptions import (
    AlreadyActiveException,
    NonRetryableException,
    StorageException,
)
from delegate_tracker.shared.logging import get_logger
from delegate_tracker.storage.store import PartitionedStore, Record
from delegate_tracker.sync.models import SyncProgress

logger = get_logger(__name__)


def compute_percent_complete(
    start_block: int, current_block: int, target_block: int
) -> float:
    span = target_block - start_block
    if span <= 0:
        return 1.0
    return min(max((current_block - start_block) / span, 0.0), 1.0)


def estimate_time_remaining(
    start_block: int,
    current_block: int,
    target_block: int,
    elapsed: float,
) -> Optional[float]:
    """Seconds left at the blocks-per-second rate observed so far."""
    blocks_done = current_block - start_block
    if blocks_done <= 0 or elapsed <= 0:
        return None
    blocks_per_second = blocks_done / elapsed
    return max(target_block - current_block, 0) / blocks_per_second


class SyncProgressTracker:
    def __init__(
        self,
        store: PartitionedStore,
        ttl: float = StorageConstants.SHORT_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self._record: Record[SyncProgress] = Record(
            store,
            StorageConstants.SYNC_PROGRESS_FILE,
            decode=SyncProgress.from_dict,
            encode=lambda progress: progress.to_dict(),
            ttl=ttl,
        )
        self._clock = clock
        self._active: Dict[str, SyncProgress] = {}

    def is_active(self, address: str) -> bool:
        return normalize_address(address) in self._active

    async def start(
        self, address: str, start_block: int, target_block: int
    ) -> SyncProgress:
        """
        Mark a run as active.

        Raises:
            AlreadyActiveException: if a run is already active for the address
        """
        address = normalize_address(address)
        if address in self._active:
            raise AlreadyActiveException(address)

        progress = SyncProgress(
            is_active=True,
            start_block=start_block,
            current_block=start_block,
            target_block=target_block,
            events_processed=0,
            started_at=self._clock(),
            percent_complete=compute_percent_complete(
                start_block, start_block, target_block
            ),
        )
        # Claimed before the first await so a concurrent start sees it
        self._active[address] = progress

        try:
            await self._warn_if_stale(address)
            await self._record.save(progress, address)
        except BaseException:
            del self._active[address]
            raise

        logger.info(
            f"Sync started for {address}: blocks {start_block} -> {target_block}"
        )
        return progress

    async def set_start_block(self, address: str, start_block: int) -> SyncProgress:
        """Move the start of the active run before any block was processed."""
        address = normalize_address(address)
        previous = self._active.get(address)
        if previous is None:
            raise NonRetryableException(f"No active sync for {address}")
        if previous.start_block == start_block:
            return previous

        progress = previous.advanced(
            start_block=start_block,
            current_block=start_block,
            percent_complete=compute_percent_complete(
                start_block, start_block, previous.target_block
            ),
        )
        await self._record.save(progress, address)
        self._active[address] = progress
        return progress

    async def update(
        self, address: str, current_block: int, events_processed: int
    ) -> SyncProgress:
        """Advance the active run. Block and event counters never go backward."""
        address = normalize_address(address)
        previous = self._active.get(address)
        if previous is None:
            raise NonRetryableException(f"No active sync for {address}")

        current_block = max(previous.current_block, current_block)
        progress = previous.advanced(
            current_block=current_block,
            events_processed=max(previous.events_processed, events_processed),
            percent_complete=compute_percent_complete(
                previous.start_block, current_block, previous.target_block
            ),
            estimated_time_remaining=estimate_time_remaining(
                previous.start_block,
                current_block,
                previous.target_block,
                self._clock() - previous.started_at,
            ),
        )
        await self._record.save(progress, address)
        self._active[address] = progress
        return progress

    async def finish(
        self, address: str, error: Optional[BaseException] = None
    ) -> None:
        """Return the address to Idle after a completed or failed run."""
        address = normalize_address(address)
        progress = self._active.pop(address, None)
        if progress is None:
            return

        if error is None:
            logger.info(
                f"Sync completed for {address} at block {progress.current_block} "
                f"({progress.events_processed} events)"
            )
        else:
            logger.error(
                f"Sync failed for {address} at block {progress.current_block}: {error}"
            )

        await self._record.save(SyncProgress.idle(), address)

    async def get(self, address: str) -> SyncProgress:
        """Last checkpointed progress; the idle shape when nothing is recorded."""
        progress = await self._record.load(normalize_address(address))
        return progress if progress is not None else SyncProgress.idle()

    async def _warn_if_stale(self, address: str) -> None:
        try:
            persisted = await self._record.load(address)
        except StorageException as e:
            logger.warning(f"Overwriting unreadable progress for {address}: {e}")
            return
        if persisted is not None and persisted.is_active:
            logger.warning(
                f"Found stale active progress for {address} from an earlier "
                f"run (block {persisted.current_block}); resetting"
            )
