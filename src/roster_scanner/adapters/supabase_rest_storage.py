from __future__ import annotations

import logging
from typing import Any

import requests

from roster_scanner.domain.models import (
    AccessToken,
    DefaultHours,
    JobAlias,
    JobConfig,
    RosterIdentifier,
    ScanHistoryEntry,
    ScanUsage,
    ShiftRecord,
)
from roster_scanner.domain.payloads import parse_job_alias, parse_roster_identifier
from roster_scanner.ports.alias_store_port import AliasStorePort
from roster_scanner.ports.job_config_port import JobConfigPort
from roster_scanner.ports.profile_port import ProfilePort
from roster_scanner.ports.shift_store_port import ShiftStorePort
from roster_scanner.services.token_manager import TokenManager

LOGGER = logging.getLogger(__name__)

_DEFAULT_SCAN_LIMIT = 20


class SupabaseRestStorage(AliasStorePort, ProfilePort, ShiftStorePort, JobConfigPort):
    """PostgREST-backed storage for the signed-in user's rows.

    Row-level security scopes every table to the user; ``user_id`` filters
    are still sent so that a misconfigured policy cannot leak rows.
    """

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        tokens: TokenManager,
        timeout_seconds: float = 20,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._anon_key = anon_key
        self._tokens = tokens
        self._timeout_seconds = timeout_seconds

    # Aliases

    def list_aliases(self) -> list[JobAlias]:
        session = self._session()
        response = requests.get(
            self._table_url("job_aliases"),
            headers=self._headers(session),
            params={"select": "*", "user_id": f"eq.{session.user_id}"},
            timeout=self._timeout_seconds,
        )
        self._raise_for_status(response, context="list job aliases")
        aliases = [parse_job_alias(row) for row in _rows(response)]
        return [alias for alias in aliases if alias is not None]

    def upsert_aliases(self, aliases: list[JobAlias]) -> None:
        if not aliases:
            return
        session = self._session()
        rows = [{"user_id": session.user_id, **alias.to_payload()} for alias in aliases]
        response = requests.post(
            self._table_url("job_aliases"),
            headers={
                **self._headers(session),
                "Prefer": "resolution=merge-duplicates,return=minimal",
            },
            params={"on_conflict": "user_id,alias"},
            json=rows,
            timeout=self._timeout_seconds,
        )
        self._raise_for_status(response, context="save job aliases")

    def delete_alias(self, alias_id: str) -> None:
        session = self._session()
        response = requests.delete(
            self._table_url("job_aliases"),
            headers=self._headers(session),
            params={"id": f"eq.{alias_id}"},
            timeout=self._timeout_seconds,
        )
        self._raise_for_status(response, context="delete job alias")

    # Profile

    def get_scan_usage(self) -> ScanUsage:
        row = self._profile_row("roster_scans_this_month,roster_scan_limit")
        if row is None:
            return ScanUsage(used=0, limit=_DEFAULT_SCAN_LIMIT)
        return ScanUsage(
            used=int(row.get("roster_scans_this_month") or 0),
            limit=int(row.get("roster_scan_limit") or _DEFAULT_SCAN_LIMIT),
        )

    def get_user_email(self) -> str | None:
        session = self._tokens.get_valid_token()
        return session.email if session else None

    def get_roster_identifier(self) -> RosterIdentifier | None:
        row = self._profile_row("roster_identifier")
        if row is None:
            return None
        return parse_roster_identifier(row.get("roster_identifier"))

    def save_roster_identifier(self, identifier: RosterIdentifier) -> None:
        session = self._session()
        response = requests.patch(
            self._table_url("profiles"),
            headers={**self._headers(session), "Prefer": "return=minimal"},
            params={"id": f"eq.{session.user_id}"},
            json={"roster_identifier": identifier.to_payload()},
            timeout=self._timeout_seconds,
        )
        self._raise_for_status(response, context="save roster identifier")

    def list_scan_history(self, limit: int = 10) -> list[ScanHistoryEntry]:
        session = self._session()
        response = requests.get(
            self._table_url("roster_scans"),
            headers=self._headers(session),
            params={
                "select": "id,created_at,shifts_created,processing_time_ms",
                "user_id": f"eq.{session.user_id}",
                "order": "created_at.desc",
                "limit": str(limit),
            },
            timeout=self._timeout_seconds,
        )
        self._raise_for_status(response, context="list scan history")
        return [
            ScanHistoryEntry(
                id=str(row.get("id", "")),
                created_at=str(row.get("created_at", "")),
                shifts_created=int(row.get("shifts_created") or 0),
                processing_time_ms=row.get("processing_time_ms"),
            )
            for row in _rows(response)
        ]

    # Shifts

    def add_shifts(self, shifts: list[ShiftRecord]) -> None:
        if not shifts:
            return
        session = self._session()
        rows = [
            {
                "user_id": session.user_id,
                "date": shift.date,
                "type": shift.job_id,
                "hours": shift.hours,
                "note": shift.note,
                "start_time": shift.start_time,
                "end_time": shift.end_time,
            }
            for shift in shifts
        ]
        response = requests.post(
            self._table_url("shifts"),
            headers={
                **self._headers(session),
                "Prefer": "resolution=merge-duplicates,return=minimal",
            },
            params={"on_conflict": "user_id,date,type"},
            json=rows,
            timeout=self._timeout_seconds,
        )
        self._raise_for_status(response, context="add shifts")
        LOGGER.info("Stored %s shift(s)", len(rows))

    # Job configs

    def list_job_configs(self) -> list[JobConfig]:
        session = self._session()
        response = requests.get(
            self._table_url("job_configs"),
            headers=self._headers(session),
            params={"select": "*", "user_id": f"eq.{session.user_id}"},
            timeout=self._timeout_seconds,
        )
        self._raise_for_status(response, context="list job configs")
        return [
            JobConfig(
                id=str(row.get("config_id", "")),
                name=str(row.get("name", "")),
                color=row.get("color") or "blue",
                default_hours=DefaultHours(
                    weekday=float(row.get("default_hours_weekday") or 0),
                    weekend=float(row.get("default_hours_weekend") or 0),
                ),
            )
            for row in _rows(response)
            if row.get("config_id")
        ]

    def add_job_config(self, job: JobConfig) -> None:
        session = self._session()
        response = requests.post(
            self._table_url("job_configs"),
            headers={**self._headers(session), "Prefer": "return=minimal"},
            json={
                "user_id": session.user_id,
                "config_id": job.id,
                "name": job.name,
                "color": job.color,
                "default_hours_weekday": job.default_hours.weekday,
                "default_hours_weekend": job.default_hours.weekend,
            },
            timeout=self._timeout_seconds,
        )
        self._raise_for_status(response, context="add job config")

    def _profile_row(self, columns: str) -> dict[str, Any] | None:
        session = self._session()
        response = requests.get(
            self._table_url("profiles"),
            headers=self._headers(session),
            params={"select": columns, "id": f"eq.{session.user_id}"},
            timeout=self._timeout_seconds,
        )
        self._raise_for_status(response, context="load profile")
        rows = _rows(response)
        return rows[0] if rows else None

    def _session(self) -> AccessToken:
        session = self._tokens.get_valid_token()
        if session is None or not session.user_id:
            raise RuntimeError("Not signed in.")
        return session

    def _table_url(self, table: str) -> str:
        return f"{self._base_url}/rest/v1/{table}"

    def _headers(self, session: AccessToken) -> dict[str, str]:
        return {
            "apikey": self._anon_key,
            "Authorization": f"Bearer {session.token}",
            "Content-Type": "application/json",
        }

    @staticmethod
    def _raise_for_status(response: requests.Response, context: str) -> None:
        if response.status_code in (401, 403):
            raise RuntimeError(f"Auth failed while attempting to {context}.")
        if response.status_code == 404:
            raise RuntimeError(f"Table not found or no access while attempting to {context}.")
        if response.status_code >= 400:
            raise RuntimeError(
                f"Storage API error {response.status_code} while attempting to {context}."
            )


def _rows(response: requests.Response) -> list[dict[str, Any]]:
    payload = response.json()
    if not isinstance(payload, list):
        return []
    return [row for row in payload if isinstance(row, dict)]
