"""
Pytest configuration and shared fixtures.

This module provides common fixtures and configuration for all tests.
"""

import asyncio
from typing import Dict, List, Optional, Set

import pytest

from delegate_tracker.shared.exceptions import ProviderException, StorageException
from delegate_tracker.shared.retry import RetryConfig
from delegate_tracker.storage.backend import FileStorage
from delegate_tracker.storage.cache import TTLCache
from delegate_tracker.storage.store import PartitionedStore
from delegate_tracker.sync.progress import SyncProgressTracker
from delegate_tracker.timeline.builder import TimelineBuilder
from delegate_tracker.timeline.models import DelegationEvent
from delegate_tracker.timeline.provider import ChainDataProvider

DELEGATE = "0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed"
DELEGATORS = [
    "0x" + "11" * 20,
    "0x" + "22" * 20,
    "0x" + "33" * 20,
]
SHORT_LIVED = "0x" + "44" * 20

NO_RETRY = RetryConfig(max_attempts=1, base_delay=0.0)


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeChainProvider(ChainDataProvider):
    """Serves a fixed event list, optionally failing past a block."""

    def __init__(
        self,
        events: List[DelegationEvent],
        latest_block: int = 100,
        fail_from_block: Optional[int] = None,
    ):
        self.events = list(events)
        self.latest_block = latest_block
        self.fail_from_block = fail_from_block
        self.calls: List[tuple] = []
        self.gate: Optional[asyncio.Event] = None

    async def get_latest_block(self) -> int:
        return self.latest_block

    async def get_delegation_events(
        self, delegate: str, from_block: int, to_block: int
    ) -> List[DelegationEvent]:
        self.calls.append((delegate, from_block, to_block))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_from_block is not None and to_block >= self.fail_from_block:
            raise ProviderException(
                f"RPC timeout for {from_block}-{to_block}", source="chain"
            )
        # Reversed on purpose: the builder must order events itself
        return [
            e for e in reversed(self.events) if from_block <= e.block_number <= to_block
        ]


class FlakyStorage(FileStorage):
    """FileStorage that fails writes of selected documents."""

    def __init__(self, data_dir: str):
        super().__init__(data_dir)
        self.fail_writes: Dict[str, int] = {}
        self.fail_reads: Set[str] = set()

    def write(self, name, data, address=None):
        remaining = self.fail_writes.get(name, 0)
        if remaining:
            self.fail_writes[name] = remaining - 1
            raise StorageException(f"disk full writing {name}", key=name)
        super().write(name, data, address)

    def read(self, name, address=None):
        if name in self.fail_reads:
            raise StorageException(f"I/O error reading {name}", key=name)
        return super().read(name, address)


def make_events() -> List[DelegationEvent]:
    """Deterministic delegation history over blocks 1-100."""
    events = []
    for index, delegator in enumerate(DELEGATORS):
        events.append(
            DelegationEvent(
                block_number=index + 1,
                log_index=0,
                block_timestamp=1_600_000_000 + (index + 1) * 12,
                delegator=delegator,
                voting_power_delta=5_000,
            )
        )
    for block in range(10, 101, 5):
        events.append(
            DelegationEvent(
                block_number=block,
                log_index=0,
                block_timestamp=1_600_000_000 + block * 12,
                delegator=DELEGATORS[(block // 5) % 3],
                voting_power_delta=200 if block % 10 == 0 else -100,
            )
        )
    # Two changes in one block, distinguished by log index
    events.append(
        DelegationEvent(
            block_number=50,
            log_index=3,
            block_timestamp=1_600_000_000 + 50 * 12,
            delegator=DELEGATORS[0],
            voting_power_delta=-1_000,
        )
    )
    # A delegator that comes and goes entirely
    events.append(
        DelegationEvent(
            block_number=21,
            log_index=0,
            block_timestamp=1_600_000_000 + 21 * 12,
            delegator=SHORT_LIVED,
            voting_power_delta=700,
        )
    )
    events.append(
        DelegationEvent(
            block_number=41,
            log_index=0,
            block_timestamp=1_600_000_000 + 41 * 12,
            delegator=SHORT_LIVED,
            voting_power_delta=-700,
        )
    )
    return events


@pytest.fixture
def delegate_address() -> str:
    return DELEGATE


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def flaky_backend(tmp_path) -> FlakyStorage:
    return FlakyStorage(str(tmp_path / "data"))


@pytest.fixture
def store(flaky_backend) -> PartitionedStore:
    return PartitionedStore(flaky_backend, TTLCache(default_ttl=60))


@pytest.fixture
def tracker(store, clock) -> SyncProgressTracker:
    return SyncProgressTracker(store, ttl=30, clock=clock)


@pytest.fixture
def events() -> List[DelegationEvent]:
    return make_events()


@pytest.fixture
def provider(events) -> FakeChainProvider:
    return FakeChainProvider(events)


@pytest.fixture
def builder(store, provider, tracker, clock) -> TimelineBuilder:
    return TimelineBuilder(
        store,
        provider,
        tracker,
        start_block_for=lambda _address: 1,
        batch_size=10,
        retry_config=NO_RETRY,
        clock=clock,
    )


@pytest.fixture
def delegators() -> List[str]:
    return list(DELEGATORS)


@pytest.fixture
def short_lived_delegator() -> str:
    return SHORT_LIVED


@pytest.fixture
def provider_factory():
    return FakeChainProvider


@pytest.fixture
def builder_factory(store, tracker, clock):
    def _make(provider: ChainDataProvider, **overrides) -> TimelineBuilder:
        options = dict(
            start_block_for=lambda _address: 1,
            batch_size=10,
            retry_config=NO_RETRY,
            clock=clock,
        )
        options.update(overrides)
        return TimelineBuilder(store, provider, tracker, **options)

    return _make


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: mark test as slow-running")
