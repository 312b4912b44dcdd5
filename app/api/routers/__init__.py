"""
app/api/routers package marker.
"""

from app.api.routers.results import router as results_router
from app.api.routers.scans import router as scans_router

__all__ = [
    "results_router",
    "scans_router",
]
