"""Delegate tracker - voting power timelines and vote ledgers for governance delegates."""

__version__ = "1.0.0"

from .service import DelegateTrackerService
from .shared.config import Settings

__all__ = ["DelegateTrackerService", "Settings"]
