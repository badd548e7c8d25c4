from __future__ import annotations

import logging

from roster_scanner.domain.models import ScanUsage
from roster_scanner.ports.profile_port import ProfilePort

LOGGER = logging.getLogger(__name__)


class UsageGate:
    """Monthly scan quota checks.

    Accounts in ``elevated_emails`` keep the limit advertised by the backend;
    every other account is capped at ``app_limit``.
    """

    def __init__(
        self,
        profile: ProfilePort,
        app_limit: int = 5,
        default_limit: int = 20,
        elevated_emails: frozenset[str] = frozenset(),
    ) -> None:
        self._profile = profile
        self._app_limit = app_limit
        self._default_limit = default_limit
        self._elevated_emails = frozenset(email.lower() for email in elevated_emails)

    @staticmethod
    def check_quota(usage: ScanUsage | None) -> bool:
        if usage is None:
            return True
        return usage.used < usage.limit

    @staticmethod
    def limit_message(usage: ScanUsage) -> str:
        return f"Monthly limit reached ({usage.limit} scans)."

    def load_usage(self) -> ScanUsage:
        try:
            stored = self._profile.get_scan_usage()
        except Exception as exc:
            LOGGER.warning("Failed to load scan usage: %s", exc)
            stored = ScanUsage(used=0, limit=self._default_limit)
        return self._with_override(stored.used, stored.limit or self._default_limit)

    def apply_scan_counts(self, scans_used: int, scan_limit: int) -> ScanUsage:
        return self._with_override(scans_used, scan_limit)

    def _with_override(self, used: int, advertised_limit: int) -> ScanUsage:
        if self._is_elevated():
            return ScanUsage(used=used, limit=advertised_limit)
        return ScanUsage(used=used, limit=self._app_limit)

    def _is_elevated(self) -> bool:
        if not self._elevated_emails:
            return False
        try:
            email = self._profile.get_user_email()
        except Exception as exc:
            LOGGER.warning("Failed to read account email: %s", exc)
            return False
        return bool(email) and email.lower() in self._elevated_emails
