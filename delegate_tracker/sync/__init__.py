from delegate_tracker.sync.models import SyncProgress
from delegate_tracker.sync.progress import SyncProgressTracker

__all__ = ["SyncProgress", "SyncProgressTracker"]
