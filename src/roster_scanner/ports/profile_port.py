from __future__ import annotations

from typing import Protocol

from roster_scanner.domain.models import RosterIdentifier, ScanHistoryEntry, ScanUsage


class ProfilePort(Protocol):
    def get_scan_usage(self) -> ScanUsage:
        """Return this month's scan counters as stored on the profile."""

    def get_user_email(self) -> str | None:
        """Return the signed-in account's email, if known."""

    def get_roster_identifier(self) -> RosterIdentifier | None:
        """Return the saved roster identifier, if any."""

    def save_roster_identifier(self, identifier: RosterIdentifier) -> None:
        """Persist the roster identifier on the profile."""

    def list_scan_history(self, limit: int = 10) -> list[ScanHistoryEntry]:
        """Return recent scans, newest first."""
