"""
Repository layer exports.
"""

from db.repositories.liveness_result_repository import (
    HAS_EXPIRY_DATE_REASON,
    LivenessResultRepository,
)
from db.repositories.scan_checkpoint_repository import ScanCheckpointRepository

__all__ = [
    "HAS_EXPIRY_DATE_REASON",
    "LivenessResultRepository",
    "ScanCheckpointRepository",
]
