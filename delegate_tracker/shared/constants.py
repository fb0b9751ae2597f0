from eth_utils import keccak


def _topic(signature: str) -> str:
    return "0x" + keccak(text=signature).hex()


class StorageConstants:
    """Document names and cache TTLs for the per-address namespace"""

    METADATA_FILE = "metadata.json"
    CURRENT_STATE_FILE = "current-state.json"
    TIMELINE_FILE = "timeline.json"
    VOTES_DATA_FILE = "votes.json"
    VOTES_METADATA_FILE = "votes-metadata.json"
    SYNC_PROGRESS_FILE = "sync-progress.json"

    # Seconds. Metadata and progress are polled during an active sync.
    SHORT_TTL = 30
    LONG_TTL = 60


class EventConstants:
    """ERC20Votes / Governor event topics"""

    DELEGATE_VOTES_CHANGED = _topic(
        "DelegateVotesChanged(address,uint256,uint256)"
    )
    DELEGATE_CHANGED = _topic("DelegateChanged(address,address,address)")
    TRANSFER = _topic("Transfer(address,address,uint256)")
    VOTE_CAST = _topic("VoteCast(address,uint256,uint8,uint256,string)")

    ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class SyncConstants:
    """Defaults for timeline sync runs"""

    DEFAULT_BATCH_SIZE = 10_000
    DEFAULT_START_BLOCK = 0
    BLOCK_TIMESTAMP_CACHE_SIZE = 4096


class SnapshotConstants:
    """Snapshot hub GraphQL"""

    DEFAULT_URL = "https://hub.snapshot.org/graphql"
    PAGE_SIZE = 1000
