"""Port interfaces for the data the comparison consumes.

The analyzer depends only on these abstractions. Adapters (Web API clients,
JSON snapshots, test fakes) provide already-resolved records.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

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


class CommandBarDataSource(ABC):
    """Solution, customization and security facts for one environment."""

    @abstractmethod
    async def fetch_solutions(self) -> list[Solution]:
        raise NotImplementedError

    @abstractmethod
    async def fetch_publishers(self) -> list[Publisher]:
        raise NotImplementedError

    @abstractmethod
    async def fetch_ribbon_diffs(self, entity: str, context: str) -> list[RibbonDiffRecord]:
        """Ribbon-diff customizations for the entity (and global ones) on ``context``."""
        raise NotImplementedError

    @abstractmethod
    async def fetch_modern_commands(self, entity: str, context: str) -> list[ModernCommandRecord]:
        raise NotImplementedError

    @abstractmethod
    async def fetch_hidden_actions(self, entity: str, context: str) -> list[HiddenActionRecord]:
        """Hide-custom-action records, each naming the command it suppresses."""
        raise NotImplementedError

    @abstractmethod
    async def fetch_entity_capabilities(self, entity: str) -> EntityCapabilities:
        raise NotImplementedError

    @abstractmethod
    async def fetch_user_privileges(self, user_id: str, entity: str) -> PrivilegeSet:
        """Effective entity privileges, including those inherited through teams."""
        raise NotImplementedError

    @abstractmethod
    async def fetch_user_roles(self, user_id: str) -> list[SecurityPrincipal]:
        raise NotImplementedError

    @abstractmethod
    async def fetch_user_teams(self, user_id: str) -> list[SecurityPrincipal]:
        raise NotImplementedError

    @abstractmethod
    async def check_user_privilege_by_name(self, user_id: str, privilege_name: str) -> bool:
        """Whether the user holds a non-entity privilege such as ``prvExportToExcel``."""
        raise NotImplementedError

    @abstractmethod
    async def resolve_current_session_user_id(self) -> str | None:
        """Identity of the signed-in user, or ``None`` outside a session."""
        raise NotImplementedError


class RibbonPayloadFetcher(ABC):
    """Retrieves the compressed ribbon definition for an entity."""

    @abstractmethod
    async def fetch_compressed_ribbon(self, entity: str, location_filter: str) -> str | None:
        """Base64-encoded gzip ribbon XML, or ``None`` when the entity has none."""
        raise NotImplementedError
