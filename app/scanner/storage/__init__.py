"""
Storage layer exports.
"""

from app.scanner.storage.base import CheckpointStore, ResultStore
from app.scanner.storage.sqlalchemy_storage import (
    SQLAlchemyCheckpointStore,
    SQLAlchemyResultStore,
)

__all__ = [
    "CheckpointStore",
    "ResultStore",
    "SQLAlchemyCheckpointStore",
    "SQLAlchemyResultStore",
]
