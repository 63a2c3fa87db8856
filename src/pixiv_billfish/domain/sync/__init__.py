"""Sync domain - Pixiv metadata into a Billfish library.

This domain handles:
- Worker pools for the tag and note pipelines
- Shared tag cache, existence sets and batched writes
- Run lifecycle and per-pipeline statistics
- Regrouping artist tags under a parent tag (Billfish 3.x)
"""

from .artist import regroup_artist_tags
from .engine import RunState, SyncEngine, SyncReport, TaskOutcome
from .exceptions import InitializationError, SyncError
from .pool import WorkerPool
from .state import BufferThresholds, SyncState, TagResolution, WriteBuffer
from .stats import Statistics, StatsSnapshot

__all__ = [
    "regroup_artist_tags",
    "RunState",
    "SyncEngine",
    "SyncReport",
    "TaskOutcome",
    "InitializationError",
    "SyncError",
    "WorkerPool",
    "BufferThresholds",
    "SyncState",
    "TagResolution",
    "WriteBuffer",
    "Statistics",
    "StatsSnapshot",
]
