from dataclasses import dataclass, replace
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class SyncProgress:
    """Snapshot of an in-flight sync run for one address."""

    is_active: bool
    start_block: int
    current_block: int
    target_block: int
    events_processed: int
    started_at: float
    percent_complete: float = 0.0
    estimated_time_remaining: Optional[float] = None

    @classmethod
    def idle(cls) -> "SyncProgress":
        """The shape returned when no run is active."""
        return cls(
            is_active=False,
            start_block=0,
            current_block=0,
            target_block=0,
            events_processed=0,
            started_at=0,
            percent_complete=0.0,
            estimated_time_remaining=None,
        )

    def advanced(self, **changes: Any) -> "SyncProgress":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_active": self.is_active,
            "start_block": self.start_block,
            "current_block": self.current_block,
            "target_block": self.target_block,
            "events_processed": self.events_processed,
            "started_at": self.started_at,
            "percent_complete": self.percent_complete,
            "estimated_time_remaining": self.estimated_time_remaining,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncProgress":
        eta = data.get("estimated_time_remaining")
        return cls(
            is_active=bool(data["is_active"]),
            start_block=int(data["start_block"]),
            current_block=int(data["current_block"]),
            target_block=int(data["target_block"]),
            events_processed=int(data["events_processed"]),
            started_at=float(data["started_at"]),
            percent_complete=float(data.get("percent_complete", 0.0)),
            estimated_time_remaining=float(eta) if eta is not None else None,
        )
