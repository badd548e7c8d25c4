from __future__ import annotations

from typing import Protocol

from roster_scanner.domain.models import ShiftRecord


class ShiftStorePort(Protocol):
    def add_shifts(self, shifts: list[ShiftRecord]) -> None:
        """Persist finished shift records, replacing same (date, job) entries."""
