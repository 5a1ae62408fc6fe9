"""Persistence layer.

Uses SQLModel with async SQLite (aiosqlite) by default.
"""

from spinup.store.database import SQLStore, create_engine
from spinup.store.metadata import MetadataStore
from spinup.store.models import BackupRecord, ClusterRecord

__all__ = [
    "BackupRecord",
    "ClusterRecord",
    "MetadataStore",
    "SQLStore",
    "create_engine",
]
