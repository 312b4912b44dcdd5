"""
Config helpers for the scanner.
"""

from app.scanner.config.loader import get_scanner_settings, load_scanner_settings
from app.scanner.config.models import ScannerSettings, WhmcsSettings

__all__ = [
    "ScannerSettings",
    "WhmcsSettings",
    "get_scanner_settings",
    "load_scanner_settings",
]
