from delegate_tracker.votes.aggregator import VoteAggregator, merge_votes
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

__all__ = [
    "VoteAggregator",
    "merge_votes",
    "GovernorVoteCollector",
    "SnapshotVoteCollector",
    "VoteCollector",
    "VoteEntry",
    "VotesData",
    "VotesMetadata",
    "VoteSource",
]
