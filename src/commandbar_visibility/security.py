"""Role and team diff between two users."""

from __future__ import annotations

from typing import Iterable

from commandbar_visibility.models import PrincipalDiff, SecurityContextComparison, SecurityPrincipal


def compare_contexts(
    current_roles: Iterable[SecurityPrincipal],
    target_roles: Iterable[SecurityPrincipal],
    current_teams: Iterable[SecurityPrincipal],
    target_teams: Iterable[SecurityPrincipal],
) -> SecurityContextComparison:
    """Diff two users' roles and teams by id.

    The result only qualifies verdicts for rules the engine cannot evaluate;
    it never decides visibility on its own.
    """
    roles = _diff(list(current_roles), list(target_roles))
    teams = _diff(list(current_teams), list(target_teams))
    roles_match = not roles.only_current and not roles.only_target
    teams_match = not teams.only_current and not teams.only_target
    return SecurityContextComparison(
        roles_match=roles_match,
        teams_match=teams_match,
        security_context_match=roles_match and teams_match,
        roles=roles,
        teams=teams,
    )


def blocking_evidence(comparison: SecurityContextComparison) -> tuple[list[str], list[str]]:
    """Describe the diverging roles and teams for each side.

    Returns:
        ``(current_user_evidence, target_user_evidence)``.
    """
    current: list[str] = []
    target: list[str] = []
    if comparison.roles.only_current:
        current.append(f"Has roles: {_names(comparison.roles.only_current)}")
    if comparison.roles.only_target:
        target.append(f"Has roles: {_names(comparison.roles.only_target)}")
    if comparison.teams.only_current:
        current.append(f"Member of teams: {_names(comparison.teams.only_current)}")
    if comparison.teams.only_target:
        target.append(f"Member of teams: {_names(comparison.teams.only_target)}")
    return current, target


def _diff(current: list[SecurityPrincipal], target: list[SecurityPrincipal]) -> PrincipalDiff:
    current_ids = {item.id for item in current}
    target_ids = {item.id for item in target}
    return PrincipalDiff(
        shared=[item for item in current if item.id in target_ids],
        only_current=[item for item in current if item.id not in target_ids],
        only_target=[item for item in target if item.id not in current_ids],
    )


def _names(principals: list[SecurityPrincipal]) -> str:
    return ", ".join(item.name or item.id for item in principals)
