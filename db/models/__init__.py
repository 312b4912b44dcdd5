"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.liveness_result import LivenessResultRecord
from db.models.scan_checkpoint import ScanCheckpointRecord

__all__ = [
    "LivenessResultRecord",
    "ScanCheckpointRecord",
]
