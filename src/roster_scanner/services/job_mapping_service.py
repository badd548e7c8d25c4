from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable

from roster_scanner.domain.models import JobAlias, JobMapping, ParsedShift
from roster_scanner.ports.alias_store_port import AliasStorePort

LOGGER = logging.getLogger(__name__)


class JobMappingReconciler:
    def __init__(self, aliases: AliasStorePort) -> None:
        self._aliases = aliases

    @staticmethod
    def reconcile(
        shifts: Iterable[ParsedShift], known_job_ids: set[str] | frozenset[str]
    ) -> list[ParsedShift]:
        """Clear mapped job ids that no longer exist."""

        reconciled: list[ParsedShift] = []
        for shift in shifts:
            if shift.mapped_job_id and shift.mapped_job_id not in known_job_ids:
                reconciled.append(replace(shift, mapped_job_id=None))
            else:
                reconciled.append(shift)
        return reconciled

    @staticmethod
    def collect_unmapped(shifts: Iterable[ParsedShift]) -> list[str]:
        seen: set[str] = set()
        unmapped: list[str] = []
        for shift in shifts:
            if shift.mapped_job_id:
                continue
            if shift.roster_job_name in seen:
                continue
            seen.add(shift.roster_job_name)
            unmapped.append(shift.roster_job_name)
        return unmapped

    @staticmethod
    def apply_mappings(
        shifts: Iterable[ParsedShift], mappings: Iterable[JobMapping]
    ) -> list[ParsedShift]:
        by_name: dict[str, str] = {}
        for mapping in mappings:
            by_name.setdefault(mapping.roster_job_name, mapping.mapped_job_id)
        return [
            replace(shift, mapped_job_id=by_name[shift.roster_job_name])
            if shift.roster_job_name in by_name
            else shift
            for shift in shifts
        ]

    def persist_aliases(self, mappings: Iterable[JobMapping]) -> bool:
        """Upsert aliases for mappings flagged to be remembered.

        Best-effort: a store failure is logged and reported as False so the
        caller can warn; the in-memory mapping is unaffected.
        """

        aliases = [
            JobAlias(alias=mapping.roster_job_name, job_config_id=mapping.mapped_job_id)
            for mapping in mappings
            if mapping.save_as_alias
        ]
        if not aliases:
            return True
        try:
            self._aliases.upsert_aliases(aliases)
        except Exception as exc:
            LOGGER.warning("Failed to save %s job alias(es): %s", len(aliases), exc)
            return False
        LOGGER.info("Saved %s job alias(es)", len(aliases))
        return True

    def load_aliases(self) -> list[JobAlias]:
        try:
            return list(self._aliases.list_aliases())
        except Exception as exc:
            LOGGER.warning("Failed to load job aliases: %s", exc)
            return []
