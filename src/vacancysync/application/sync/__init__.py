"""
Sync engine: diff extracted records against the remote store.
"""

from vacancysync.application.sync.differ import build_change, classify
from vacancysync.application.sync.service import ReservationSyncService, SyncResult

__all__ = [
    "build_change",
    "classify",
    "ReservationSyncService",
    "SyncResult",
]
