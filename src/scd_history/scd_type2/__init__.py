"""
SCD Type 2 reconciliation modules.
"""

from .processor import HistoryProcessor
from .loader import SnapshotLoader
from .classifier import ChangeClassifier
from .materializer import VersionMaterializer
from .closer import Closer
from .writer import HistoryWriter, RunLock
from .validators import SCDValidator
from .models import SourceRecord, HistoryRecord, Snapshot, ChangeSet, WritePlan

__all__ = [
    "HistoryProcessor",
    "SnapshotLoader",
    "ChangeClassifier",
    "VersionMaterializer",
    "Closer",
    "HistoryWriter",
    "RunLock",
    "SCDValidator",
    "SourceRecord",
    "HistoryRecord",
    "Snapshot",
    "ChangeSet",
    "WritePlan"
]
