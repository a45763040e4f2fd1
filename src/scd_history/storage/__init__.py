"""
Source and history sink collaborators.

The Delta Lake sink lives in scd_history.storage.delta and is not
imported here.
"""

from .base import SnapshotSource, HistorySink
from .memory import InMemorySource, InMemoryHistorySink

__all__ = [
    "SnapshotSource",
    "HistorySink",
    "InMemorySource",
    "InMemoryHistorySink"
]
