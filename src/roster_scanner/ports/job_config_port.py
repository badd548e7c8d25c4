from __future__ import annotations

from typing import Protocol

from roster_scanner.domain.models import JobConfig


class JobConfigPort(Protocol):
    def list_job_configs(self) -> list[JobConfig]:
        """Return the user's job configurations in display order."""

    def add_job_config(self, job: JobConfig) -> None:
        """Create a job configuration."""
