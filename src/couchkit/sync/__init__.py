"""
Synced configuration documents and change feed watching.
"""

from .synced_document import SyncedDocument
from .watch import ChangeEvent, DatabaseWatcher, watch_database

__all__ = ["SyncedDocument", "ChangeEvent", "DatabaseWatcher", "watch_database"]
