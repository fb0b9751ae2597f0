from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class DelegationEvent:
    """A raw voting-power change for a delegate, as emitted on chain."""

    block_number: int
    log_index: int
    block_timestamp: int
    delegator: str
    voting_power_delta: int
    transaction_hash: Optional[str] = None

    @property
    def position(self) -> tuple:
        return (self.block_number, self.log_index)


@dataclass(frozen=True)
class TimelineEntry:
    block_number: int
    block_timestamp: int
    delegator: str
    voting_power_delta: int
    resulting_total_voting_power: int
    log_index: int = 0
    transaction_hash: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "block_number": self.block_number,
            "block_timestamp": self.block_timestamp,
            "delegator": self.delegator,
            "voting_power_delta": self.voting_power_delta,
            "resulting_total_voting_power": self.resulting_total_voting_power,
            "log_index": self.log_index,
            "transaction_hash": self.transaction_hash,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimelineEntry":
        return cls(
            block_number=int(data["block_number"]),
            block_timestamp=int(data["block_timestamp"]),
            delegator=data["delegator"],
            voting_power_delta=int(data["voting_power_delta"]),
            resulting_total_voting_power=int(
                data["resulting_total_voting_power"]
            ),
            log_index=int(data.get("log_index", 0)),
            transaction_hash=data.get("transaction_hash"),
        )


@dataclass
class CurrentState:
    """Current balance per delegator. Zero balances are kept for history."""

    delegators: Dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.delegators.values())

    @property
    def active_delegators(self) -> int:
        return sum(1 for balance in self.delegators.values() if balance > 0)

    def copy(self) -> "CurrentState":
        return CurrentState(delegators=dict(self.delegators))

    def to_dict(self) -> Dict[str, Any]:
        return {"delegators": dict(self.delegators)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CurrentState":
        return cls(
            delegators={
                address: int(balance)
                for address, balance in data["delegators"].items()
            }
        )


@dataclass(frozen=True)
class SyncMetadata:
    last_synced_block: int
    last_block_timestamp: int
    last_sync_timestamp: float
    total_voting_power: int
    total_timeline_entries: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "last_synced_block": self.last_synced_block,
            "last_block_timestamp": self.last_block_timestamp,
            "last_sync_timestamp": self.last_sync_timestamp,
            "total_voting_power": self.total_voting_power,
            "total_timeline_entries": self.total_timeline_entries,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncMetadata":
        return cls(
            last_synced_block=int(data["last_synced_block"]),
            last_block_timestamp=int(data["last_block_timestamp"]),
            last_sync_timestamp=float(data["last_sync_timestamp"]),
            total_voting_power=int(data["total_voting_power"]),
            total_timeline_entries=int(data["total_timeline_entries"]),
        )


@dataclass(frozen=True)
class SyncResult:
    events_processed: int
    timeline_entries_added: int
    current_delegators: int
    from_block: int
    to_block: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "events_processed": self.events_processed,
            "timeline_entries_added": self.timeline_entries_added,
            "current_delegators": self.current_delegators,
            "from_block": self.from_block,
            "to_block": self.to_block,
        }


def timeline_to_list(entries: List[TimelineEntry]) -> List[Dict[str, Any]]:
    return [entry.to_dict() for entry in entries]


def timeline_from_list(data: List[Dict[str, Any]]) -> List[TimelineEntry]:
    return [TimelineEntry.from_dict(item) for item in data]
