from __future__ import annotations

from typing import Protocol

from roster_scanner.domain.models import JobAlias


class AliasStorePort(Protocol):
    def list_aliases(self) -> list[JobAlias]:
        """Return the current user's job aliases."""

    def upsert_aliases(self, aliases: list[JobAlias]) -> None:
        """Create or update aliases, unique per (user, alias)."""

    def delete_alias(self, alias_id: str) -> None:
        """Delete an alias by id."""
