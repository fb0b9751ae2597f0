from delegate_tracker.timeline.builder import (
    IntegrityReport,
    TimelineBuilder,
    replay_timeline,
)
from delegate_tracker.timeline.models import (
    CurrentState,
    DelegationEvent,
    SyncMetadata,
    SyncResult,
    TimelineEntry,
)
from delegate_tracker.timeline.provider import (
    ChainDataProvider,
    Web3DelegationProvider,
)

__all__ = [
    "IntegrityReport",
    "TimelineBuilder",
    "replay_timeline",
    "CurrentState",
    "DelegationEvent",
    "SyncMetadata",
    "SyncResult",
    "TimelineEntry",
    "ChainDataProvider",
    "Web3DelegationProvider",
]
