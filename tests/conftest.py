"""Shared test fixtures for commandbar_visibility tests."""

from __future__ import annotations

from dataclasses import dataclass, field

import pytest

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
from commandbar_visibility.ports import CommandBarDataSource

CURRENT_USER = "user-current"
TARGET_USER = "user-target"


@dataclass
class FakeDataSource(CommandBarDataSource):
    """In-memory data source; names listed in ``failing`` raise on fetch."""

    solutions: list[Solution] = field(default_factory=list)
    publishers: list[Publisher] = field(default_factory=list)
    ribbon_diffs: list[RibbonDiffRecord] = field(default_factory=list)
    modern_commands: list[ModernCommandRecord] = field(default_factory=list)
    hidden_actions: list[HiddenActionRecord] = field(default_factory=list)
    capabilities: EntityCapabilities = field(default_factory=EntityCapabilities)
    privileges: dict[str, PrivilegeSet] = field(default_factory=dict)
    roles: dict[str, list[SecurityPrincipal]] = field(default_factory=dict)
    teams: dict[str, list[SecurityPrincipal]] = field(default_factory=dict)
    misc_privileges: dict[str, set[str]] = field(default_factory=dict)
    session_user_id: str | None = None
    failing: set[str] = field(default_factory=set)
    calls: list[str] = field(default_factory=list)

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failing:
            raise RuntimeError(f"{name} unavailable")

    async def fetch_solutions(self) -> list[Solution]:
        self._check("solutions")
        return self.solutions

    async def fetch_publishers(self) -> list[Publisher]:
        self._check("publishers")
        return self.publishers

    async def fetch_ribbon_diffs(self, entity: str, context: str) -> list[RibbonDiffRecord]:
        self._check("ribbon_diffs")
        return self.ribbon_diffs

    async def fetch_modern_commands(self, entity: str, context: str) -> list[ModernCommandRecord]:
        self._check("modern_commands")
        return self.modern_commands

    async def fetch_hidden_actions(self, entity: str, context: str) -> list[HiddenActionRecord]:
        self._check("hidden_actions")
        return self.hidden_actions

    async def fetch_entity_capabilities(self, entity: str) -> EntityCapabilities:
        self._check("capabilities")
        return self.capabilities

    async def fetch_user_privileges(self, user_id: str, entity: str) -> PrivilegeSet:
        self._check("privileges")
        return self.privileges.get(user_id, PrivilegeSet())

    async def fetch_user_roles(self, user_id: str) -> list[SecurityPrincipal]:
        self._check("roles")
        return self.roles.get(user_id, [])

    async def fetch_user_teams(self, user_id: str) -> list[SecurityPrincipal]:
        self._check("teams")
        return self.teams.get(user_id, [])

    async def check_user_privilege_by_name(self, user_id: str, privilege_name: str) -> bool:
        self._check("misc_privileges")
        return privilege_name in self.misc_privileges.get(user_id, set())

    async def resolve_current_session_user_id(self) -> str | None:
        self._check("session")
        return self.session_user_id


def full_privileges() -> PrivilegeSet:
    return PrivilegeSet.model_validate(
        {kind: {"hasPrivilege": True} for kind in ("read", "write", "create", "delete", "share", "assign", "append", "appendto")}
    )


@pytest.fixture()
def sales_role() -> SecurityPrincipal:
    return SecurityPrincipal(id="role-sales", name="Salesperson")


@pytest.fixture()
def manager_role() -> SecurityPrincipal:
    return SecurityPrincipal(id="role-manager", name="Sales Manager")


@pytest.fixture()
def data_source(sales_role: SecurityPrincipal) -> FakeDataSource:
    """Both users hold every entity privilege and share one role."""
    return FakeDataSource(
        privileges={CURRENT_USER: full_privileges(), TARGET_USER: full_privileges()},
        roles={CURRENT_USER: [sales_role], TARGET_USER: [sales_role]},
        misc_privileges={
            CURRENT_USER: {"prvExportToExcel", "prvImportExportData"},
            TARGET_USER: {"prvExportToExcel", "prvImportExportData"},
        },
        session_user_id=CURRENT_USER,
    )


@pytest.fixture()
def ribbon_xml() -> str:
    return """<RibbonDefinitions>
  <CommandDefinitions>
    <CommandDefinition Id="Mscrm.DeleteSelectedRecord">
      <EnableRules>
        <EnableRule Id="Mscrm.DeleteSelectedEntityPermission" />
        <EnableRule Id="Mscrm.SelectionCountAtLeastOne" />
      </EnableRules>
      <DisplayRules>
        <DisplayRule Id="Mscrm.HideOnModern" />
      </DisplayRules>
    </CommandDefinition>
    <CommandDefinition Id="contoso.account.Approve.Command">
      <DisplayRules>
        <DisplayRule Id="contoso.account.IsApprover" />
      </DisplayRules>
    </CommandDefinition>
    <CommandDefinition Id="Mscrm.HomepageGrid.account.Orphan" />
  </CommandDefinitions>
  <RuleDefinitions>
    <DisplayRules>
      <DisplayRule Id="contoso.account.IsApprover">
        <CustomRule FunctionName="isApprover" Library="$webresource:contoso_rules.js">
          <CrmParameter Value="PrimaryControl" />
          <StringParameter Value="approve" />
        </CustomRule>
      </DisplayRule>
    </DisplayRules>
  </RuleDefinitions>
  <Buttons>
    <Button Id="Mscrm.HomepageGrid.account.DeleteMenu" Command="Mscrm.DeleteSelectedRecord" LabelText="Delete Record" />
    <Button Id="contoso.HomepageGrid.account.Approve.Button" Command="contoso.account.Approve.Command" Alt="Approve" />
    <Button Id="contoso.HomepageGrid.account.NoCommand" LabelText="Ignored" />
  </Buttons>
</RibbonDefinitions>"""
