"""Offline data source backed by a JSON snapshot of one environment.

Layout (camelCase keys)::

    {
      "currentUserId": "...",
      "solutions": [...], "publishers": [...],
      "entities": {
        "account": {
          "ribbonDiffs": [...], "modernCommands": [...], "hiddenActions": [...],
          "capabilities": {...}, "ribbonPayloads": {"HomepageGrid": "<base64>"}
        }
      },
      "users": {
        "<user id>": {
          "roles": [...], "teams": [...],
          "privileges": {"account": {"write": {"hasPrivilege": true}}},
          "miscPrivileges": ["prvExportToExcel"]
        }
      }
    }

Entities missing from the snapshot have no customizations and default
capabilities. Users missing from it raise ``SnapshotError``, which the
analyzer logs and degrades like any other failed fetch.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from commandbar_visibility.errors import SnapshotError
from commandbar_visibility.models import (
    EntityCapabilities,
    HiddenActionRecord,
    ModernCommandRecord,
    PrivilegeSet,
    Publisher,
    RibbonDiffRecord,
    SecurityPrincipal,
    Solution,
)
from commandbar_visibility.ports import CommandBarDataSource, RibbonPayloadFetcher

LOGGER = logging.getLogger(__name__)


class _SnapshotModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EntitySnapshot(_SnapshotModel):
    ribbon_diffs: list[RibbonDiffRecord] = []
    modern_commands: list[ModernCommandRecord] = []
    hidden_actions: list[HiddenActionRecord] = []
    capabilities: EntityCapabilities = Field(default_factory=EntityCapabilities)
    ribbon_payloads: dict[str, str] = {}


class UserSnapshot(_SnapshotModel):
    roles: list[SecurityPrincipal] = []
    teams: list[SecurityPrincipal] = []
    privileges: dict[str, PrivilegeSet] = {}
    misc_privileges: list[str] = []


class EnvironmentSnapshot(_SnapshotModel):
    current_user_id: str | None = None
    solutions: list[Solution] = []
    publishers: list[Publisher] = []
    entities: dict[str, EntitySnapshot] = {}
    users: dict[str, UserSnapshot] = {}


def load_snapshot(path: Path) -> EnvironmentSnapshot:
    """Read and validate a snapshot file.

    Raises:
        SnapshotError: The file cannot be read or does not match the layout.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as error:
        raise SnapshotError(f"Cannot read snapshot {path}: {error}") from error

    try:
        snapshot = EnvironmentSnapshot.model_validate_json(text)
    except ValidationError as error:
        raise SnapshotError(f"Invalid snapshot {path}: {error.error_count()} validation error(s)") from error

    LOGGER.info(
        "snapshot loaded",
        extra={
            "event": "snapshot.loaded",
            "path": str(path),
            "entities": len(snapshot.entities),
            "users": len(snapshot.users),
        },
    )
    return snapshot


class JsonSnapshotDataSource(CommandBarDataSource, RibbonPayloadFetcher):
    """Serves comparison data from an in-memory :class:`EnvironmentSnapshot`."""

    def __init__(self, snapshot: EnvironmentSnapshot) -> None:
        self.snapshot = snapshot

    @classmethod
    def from_file(cls, path: Path) -> "JsonSnapshotDataSource":
        return cls(load_snapshot(path))

    async def fetch_solutions(self) -> list[Solution]:
        return list(self.snapshot.solutions)

    async def fetch_publishers(self) -> list[Publisher]:
        return list(self.snapshot.publishers)

    async def fetch_ribbon_diffs(self, entity: str, context: str) -> list[RibbonDiffRecord]:
        return list(self._entity(entity).ribbon_diffs)

    async def fetch_modern_commands(self, entity: str, context: str) -> list[ModernCommandRecord]:
        return list(self._entity(entity).modern_commands)

    async def fetch_hidden_actions(self, entity: str, context: str) -> list[HiddenActionRecord]:
        return list(self._entity(entity).hidden_actions)

    async def fetch_entity_capabilities(self, entity: str) -> EntityCapabilities:
        return self._entity(entity).capabilities

    async def fetch_user_privileges(self, user_id: str, entity: str) -> PrivilegeSet:
        return self._user(user_id).privileges.get(entity, PrivilegeSet())

    async def fetch_user_roles(self, user_id: str) -> list[SecurityPrincipal]:
        return list(self._user(user_id).roles)

    async def fetch_user_teams(self, user_id: str) -> list[SecurityPrincipal]:
        return list(self._user(user_id).teams)

    async def check_user_privilege_by_name(self, user_id: str, privilege_name: str) -> bool:
        return privilege_name in self._user(user_id).misc_privileges

    async def resolve_current_session_user_id(self) -> str | None:
        return self.snapshot.current_user_id

    async def fetch_compressed_ribbon(self, entity: str, location_filter: str) -> str | None:
        payloads = self._entity(entity).ribbon_payloads
        return payloads.get(location_filter) or payloads.get("All")

    def _entity(self, entity: str) -> EntitySnapshot:
        return self.snapshot.entities.get(entity) or EntitySnapshot()

    def _user(self, user_id: str) -> UserSnapshot:
        user = self.snapshot.users.get(user_id)
        if user is None:
            raise SnapshotError(f"User {user_id} is not present in the snapshot")
        return user
