from __future__ import annotations

import threading
import uuid

from roster_scanner.domain.models import (
    JobAlias,
    JobConfig,
    RosterIdentifier,
    ScanHistoryEntry,
    ScanUsage,
    ShiftRecord,
)
from roster_scanner.ports.alias_store_port import AliasStorePort
from roster_scanner.ports.job_config_port import JobConfigPort
from roster_scanner.ports.profile_port import ProfilePort
from roster_scanner.ports.shift_store_port import ShiftStorePort


class InMemoryStore(AliasStorePort, ProfilePort, ShiftStorePort, JobConfigPort):
    """Process-local storage for offline runs and tests."""

    def __init__(
        self,
        job_configs: list[JobConfig] | None = None,
        usage: ScanUsage | None = None,
        email: str | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._job_configs: list[JobConfig] = list(job_configs or [])
        self._aliases: dict[str, JobAlias] = {}
        self._shifts: dict[tuple[str, str], ShiftRecord] = {}
        self._usage = usage or ScanUsage(used=0, limit=20)
        self._email = email
        self._identifier: RosterIdentifier | None = None
        self._history: list[ScanHistoryEntry] = []

    @property
    def shifts(self) -> list[ShiftRecord]:
        with self._lock:
            return list(self._shifts.values())

    def list_aliases(self) -> list[JobAlias]:
        with self._lock:
            return list(self._aliases.values())

    def upsert_aliases(self, aliases: list[JobAlias]) -> None:
        with self._lock:
            for alias in aliases:
                existing = self._aliases.get(alias.alias)
                alias_id = existing.id if existing else str(uuid.uuid4())
                self._aliases[alias.alias] = JobAlias(
                    alias=alias.alias, job_config_id=alias.job_config_id, id=alias_id
                )

    def delete_alias(self, alias_id: str) -> None:
        with self._lock:
            for name, alias in list(self._aliases.items()):
                if alias.id == alias_id:
                    del self._aliases[name]

    def get_scan_usage(self) -> ScanUsage:
        with self._lock:
            return self._usage

    def get_user_email(self) -> str | None:
        return self._email

    def get_roster_identifier(self) -> RosterIdentifier | None:
        with self._lock:
            return self._identifier

    def save_roster_identifier(self, identifier: RosterIdentifier) -> None:
        with self._lock:
            self._identifier = identifier

    def record_scan(self, entry: ScanHistoryEntry) -> None:
        with self._lock:
            self._history.append(entry)
            self._usage = ScanUsage(used=self._usage.used + 1, limit=self._usage.limit)

    def list_scan_history(self, limit: int = 10) -> list[ScanHistoryEntry]:
        with self._lock:
            history = sorted(self._history, key=lambda entry: entry.created_at, reverse=True)
        return history[:limit]

    def add_shifts(self, shifts: list[ShiftRecord]) -> None:
        with self._lock:
            for shift in shifts:
                self._shifts[(shift.date, shift.job_id)] = shift

    def list_job_configs(self) -> list[JobConfig]:
        with self._lock:
            return list(self._job_configs)

    def add_job_config(self, job: JobConfig) -> None:
        with self._lock:
            if any(existing.id == job.id for existing in self._job_configs):
                raise RuntimeError(f"Job config already exists: {job.id}")
            self._job_configs.append(job)
