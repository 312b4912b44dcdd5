"""
Storage interfaces for scan checkpoints and liveness findings.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from app.scanner.types import LivenessFinding, ScanCheckpoint


class CheckpointStore(ABC):
    """
    Per-site checkpoint storage keyed by hostname.
    """

    @abstractmethod
    def load(self, site: str) -> ScanCheckpoint | None:
        """
        Return the checkpoint for `site`, if any.
        """

    @abstractmethod
    def save(self, checkpoint: ScanCheckpoint) -> None:
        """
        Insert the checkpoint, or update it when the site already has one.
        """

    @abstractmethod
    def delete(self, site: str) -> None:
        """
        Remove any checkpoint for `site`.
        """

    @abstractmethod
    def list_auto_resumable(self) -> list[ScanCheckpoint]:
        """
        Return paused checkpoints with auto-resume enabled.
        """


class ResultStore(ABC):
    """
    Liveness finding storage keyed by (site, domain).
    """

    @abstractmethod
    def upsert(self, finding: LivenessFinding) -> None:
        """
        Persist `finding`, replacing an earlier one for the same pair.
        """

    @abstractmethod
    def find(
        self,
        *,
        website: str | None = None,
        tld: str | None = None,
        reason: str | None = None,
    ) -> list[LivenessFinding]:
        """
        Return matching findings, newest first.
        """

    @abstractmethod
    def distinct_reasons(self) -> list[str]:
        """
        Return every non-empty expiry reason on record.
        """

    @abstractmethod
    def summary(self) -> list[tuple[str, int]]:
        """
        Return ``(site, finding_count)`` pairs ordered by site.
        """
