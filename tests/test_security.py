"""Tests for commandbar_visibility.security: role and team diffs."""

from __future__ import annotations

from commandbar_visibility.models import SecurityPrincipal
from commandbar_visibility.security import blocking_evidence, compare_contexts

SALES = SecurityPrincipal(id="r1", name="Salesperson")
MANAGER = SecurityPrincipal(id="r2", name="Sales Manager")
EAST = SecurityPrincipal(id="t1", name="East")
WEST = SecurityPrincipal(id="t2", name="West")


class TestCompareContexts:
    def test_identical_contexts_match(self) -> None:
        comparison = compare_contexts([SALES], [SALES], [EAST], [EAST])
        assert comparison.security_context_match is True
        assert comparison.roles.only_current == []
        assert comparison.roles.only_target == []
        assert comparison.teams.only_current == []
        assert comparison.teams.only_target == []
        assert comparison.roles.shared == [SALES]

    def test_empty_contexts_match(self) -> None:
        assert compare_contexts([], [], [], []).security_context_match is True

    def test_compared_by_id(self) -> None:
        renamed = SecurityPrincipal(id="r1", name="Renamed")
        assert compare_contexts([SALES], [renamed], [], []).roles_match is True

    def test_diverging_roles(self) -> None:
        comparison = compare_contexts([SALES, MANAGER], [SALES], [EAST], [EAST])
        assert comparison.roles_match is False
        assert comparison.teams_match is True
        assert comparison.security_context_match is False
        assert comparison.roles.only_current == [MANAGER]

    def test_diverging_teams(self) -> None:
        comparison = compare_contexts([], [], [EAST], [WEST])
        assert comparison.teams.only_current == [EAST]
        assert comparison.teams.only_target == [WEST]
        assert comparison.security_context_match is False


class TestBlockingEvidence:
    def test_names_diverging_principals(self) -> None:
        comparison = compare_contexts([SALES, MANAGER], [SALES], [EAST], [WEST])
        current, target = blocking_evidence(comparison)
        assert current == ["Has roles: Sales Manager", "Member of teams: East"]
        assert target == ["Member of teams: West"]

    def test_no_evidence_when_matching(self) -> None:
        assert blocking_evidence(compare_contexts([SALES], [SALES], [], [])) == ([], [])
