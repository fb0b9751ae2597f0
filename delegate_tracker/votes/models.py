from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class VoteSource(str, Enum):
    """Venue a vote was cast through."""

    SNAPSHOT = "snapshot"
    ONCHAIN_CORE = "onchain-core"
    ONCHAIN_TREASURY = "onchain-treasury"


@dataclass(frozen=True)
class VoteEntry:
    proposal_id: str
    source: VoteSource
    snapshot_timestamp: int
    choice: Any
    weight: int
    voter: Optional[str] = None
    proposal_title: Optional[str] = None
    reason: Optional[str] = None
    transaction_hash: Optional[str] = None
    block_number: Optional[int] = None

    @property
    def key(self) -> Tuple[str, str]:
        """Identity: the same proposal voted through two venues is two votes."""
        return (self.proposal_id, self.source.value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proposal_id": self.proposal_id,
            "source": self.source.value,
            "snapshot_timestamp": self.snapshot_timestamp,
            "choice": self.choice,
            "weight": self.weight,
            "voter": self.voter,
            "proposal_title": self.proposal_title,
            "reason": self.reason,
            "transaction_hash": self.transaction_hash,
            "block_number": self.block_number,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VoteEntry":
        block_number = data.get("block_number")
        return cls(
            proposal_id=str(data["proposal_id"]),
            source=VoteSource(data["source"]),
            snapshot_timestamp=int(data["snapshot_timestamp"]),
            choice=data.get("choice"),
            weight=int(data.get("weight", 0)),
            voter=data.get("voter"),
            proposal_title=data.get("proposal_title"),
            reason=data.get("reason"),
            transaction_hash=data.get("transaction_hash"),
            block_number=int(block_number) if block_number is not None else None,
        )


@dataclass(frozen=True)
class VotesData:
    votes: List[VoteEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"votes": [vote.to_dict() for vote in self.votes]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VotesData":
        return cls(votes=[VoteEntry.from_dict(item) for item in data["votes"]])


@dataclass(frozen=True)
class VotesMetadata:
    last_sync_timestamp: float = 0
    total_votes: int = 0
    snapshot_votes: int = 0
    onchain_core_votes: int = 0
    onchain_treasury_votes: int = 0

    @classmethod
    def from_votes(
        cls, votes: List[VoteEntry], last_sync_timestamp: float
    ) -> "VotesMetadata":
        counts = {source: 0 for source in VoteSource}
        for vote in votes:
            counts[vote.source] += 1
        return cls(
            last_sync_timestamp=last_sync_timestamp,
            total_votes=len(votes),
            snapshot_votes=counts[VoteSource.SNAPSHOT],
            onchain_core_votes=counts[VoteSource.ONCHAIN_CORE],
            onchain_treasury_votes=counts[VoteSource.ONCHAIN_TREASURY],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "last_sync_timestamp": self.last_sync_timestamp,
            "total_votes": self.total_votes,
            "snapshot_votes": self.snapshot_votes,
            "onchain_core_votes": self.onchain_core_votes,
            "onchain_treasury_votes": self.onchain_treasury_votes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VotesMetadata":
        return cls(
            last_sync_timestamp=float(data["last_sync_timestamp"]),
            total_votes=int(data["total_votes"]),
            snapshot_votes=int(data["snapshot_votes"]),
            onchain_core_votes=int(data["onchain_core_votes"]),
            onchain_treasury_votes=int(data["onchain_treasury_votes"]),
        )
