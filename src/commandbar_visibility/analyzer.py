"""Command bar visibility comparison between two users.

Merges standard commands, ribbon-diff customizations and modern commands
into one verdict per command. Upstream fetch failures degrade to empty data;
only an unresolvable current user stops a comparison before it starts.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, TypeVar

from commandbar_visibility.custom_rules import (
    CustomRuleEvaluation,
    CustomRuleResolver,
    UnavailableCustomRuleResolver,
)
from commandbar_visibility.errors import CommandBarAnalysisError, CurrentUserUnresolvedError
from commandbar_visibility.evaluator import evaluate_reference
from commandbar_visibility.models import (
    Command,
    CommandComparisonResult,
    ComparisonReport,
    ComparisonSummary,
    CustomRuleDetail,
    Difference,
    EntityCapabilities,
    EvaluationMethod,
    HiddenActionRecord,
    ModernCommandRecord,
    ModernVisibilityType,
    PrivilegeSet,
    Publisher,
    RibbonDiffRecord,
    RuleReference,
    SecurityContextComparison,
    SecurityPrincipal,
    SecuritySummary,
    Solution,
)
from commandbar_visibility.ports import CommandBarDataSource
from commandbar_visibility.ribbon_cache import CachedRibbonPayloadSource
from commandbar_visibility.ribbon_parser import parse_ribbon_diff_command, parse_ribbon_xml_for_commands
from commandbar_visibility.rule_catalog import (
    StandardCommand,
    is_platform_id,
    misc_privileges_for_context,
    standard_commands_for_context,
)
from commandbar_visibility.security import blocking_evidence, compare_contexts

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

_DIFFERENCE_ORDER = {
    Difference.ONLY_CURRENT: 0,
    Difference.ONLY_TARGET: 1,
    Difference.POTENTIAL_DIFFERENCE: 2,
    Difference.SAME: 3,
}

# UI context -> RetrieveEntityRibbon location filter
_LOCATION_FILTERS = {
    "Form": "Form",
    "HomePageGrid": "HomepageGrid",
    "SubGrid": "SubGrid",
}


@dataclass(slots=True)
class _ComparisonData:
    solutions: list[Solution]
    publishers: list[Publisher]
    ribbon_diffs: list[RibbonDiffRecord]
    modern_commands: list[ModernCommandRecord]
    hidden_actions: list[HiddenActionRecord]
    capabilities: EntityCapabilities
    current_privileges: PrivilegeSet
    target_privileges: PrivilegeSet
    current_misc_privileges: dict[str, bool]
    target_misc_privileges: dict[str, bool]
    current_roles: list[SecurityPrincipal]
    target_roles: list[SecurityPrincipal]
    current_teams: list[SecurityPrincipal]
    target_teams: list[SecurityPrincipal]


@dataclass(slots=True)
class _UserVisibility:
    can_see: bool = True
    blocked_by: list[str] = field(default_factory=list)


@dataclass(slots=True)
class _RuleListOutcome:
    current: _UserVisibility
    target: _UserVisibility
    has_custom_rules: bool
    custom_rule_details: list[CustomRuleDetail]


@dataclass(slots=True)
class _RunState:
    """Bookkeeping shared by the per-source passes of one comparison."""

    entity: str
    hidden_command_ids: set[str]
    security: SecurityContextComparison
    solutions: dict[str, Solution]
    publishers: dict[str, Publisher]
    processed: set[str] = field(default_factory=set)
    hidden_excluded: set[str] = field(default_factory=set)

    def admit(self, command_id: str) -> bool:
        """Claim ``command_id`` for output unless it is a duplicate or hidden."""
        if command_id in self.processed:
            return False
        if command_id in self.hidden_command_ids:
            self.hidden_excluded.add(command_id)
            return False
        self.processed.add(command_id)
        return True

    def solution_and_publisher(self, solution_id: str | None) -> tuple[Solution | None, Publisher | None]:
        solution = self.solutions.get(solution_id) if solution_id else None
        publisher = None
        if solution is not None and solution.publisher_id:
            publisher = self.publishers.get(solution.publisher_id)
        return solution, publisher


class CommandBarAnalyzer:
    """Compares which commands two users would see for an entity and UI surface.

    Verdicts for rules that depend on client state or solution logic are
    assumptions, not facts: such commands carry ``has_custom_rules=True`` and,
    when the users' roles or teams differ, ``potential-difference``.
    """

    def __init__(
        self,
        data_source: CommandBarDataSource,
        ribbon_source: CachedRibbonPayloadSource | None = None,
        custom_rule_resolver: CustomRuleResolver | None = None,
    ) -> None:
        self.data_source = data_source
        self.ribbon_source = ribbon_source
        self.custom_rule_resolver = custom_rule_resolver or UnavailableCustomRuleResolver()

    async def compare_command_bar_visibility(
        self,
        target_user_id: str,
        entity_logical_name: str,
        ui_context: str = "HomePageGrid",
        current_user_id: str | None = None,
    ) -> ComparisonReport:
        """Compare command visibility for the current and the target user.

        Args:
            target_user_id: User to compare against.
            entity_logical_name: Entity whose command bar is analysed.
            ui_context: ``Form``, ``HomePageGrid`` or ``SubGrid``.
            current_user_id: Comparison user; defaults to the session user.

        Returns:
            Per-command results sorted by difference, plus a summary.

        Raises:
            CurrentUserUnresolvedError: No current user could be determined.
        """
        current_user_id = await self._resolve_current_user(current_user_id)
        LOGGER.info(
            "command bar comparison started",
            extra={
                "event": "analyzer.comparison.start",
                "entity": entity_logical_name,
                "context": ui_context,
                "current_user_id": current_user_id,
                "target_user_id": target_user_id,
            },
        )

        data = await self._fetch_comparison_data(current_user_id, target_user_id, entity_logical_name, ui_context)
        security = compare_contexts(data.current_roles, data.target_roles, data.current_teams, data.target_teams)
        state = _RunState(
            entity=entity_logical_name,
            hidden_command_ids={action.hidden_command_id for action in data.hidden_actions if action.hidden_command_id},
            security=security,
            solutions={solution.id: solution for solution in data.solutions},
            publishers={publisher.id: publisher for publisher in data.publishers},
        )

        results = [
            *self._process_standard_commands(ui_context, data, state),
            *self._process_ribbon_diffs(data, state),
            *self._process_modern_commands(data, state),
        ]
        results.sort(key=lambda item: (_DIFFERENCE_ORDER[item.difference], item.command_id))

        summary = _build_summary(results, len(state.hidden_excluded), ui_context, entity_logical_name, security)
        LOGGER.info(
            "command bar comparison completed",
            extra={
                "event": "analyzer.comparison.completed",
                "entity": entity_logical_name,
                "context": ui_context,
                "total_commands": summary.total_commands,
                "differences": summary.differences,
                "potential_differences": summary.potential_differences,
                "hidden_commands": summary.hidden_commands,
                "security": summary.security_comparison,
            },
        )
        return ComparisonReport(commands=results, summary=summary)

    async def compare_user_security_context(
        self,
        target_user_id: str,
        current_user_id: str | None = None,
    ) -> SecurityContextComparison:
        """Diff the roles and teams of the current and the target user."""
        current_user_id = await self._resolve_current_user(current_user_id)
        current_roles, target_roles, current_teams, target_teams = await asyncio.gather(
            self._guarded("current_user_roles", self.data_source.fetch_user_roles(current_user_id), []),
            self._guarded("target_user_roles", self.data_source.fetch_user_roles(target_user_id), []),
            self._guarded("current_user_teams", self.data_source.fetch_user_teams(current_user_id), []),
            self._guarded("target_user_teams", self.data_source.fetch_user_teams(target_user_id), []),
        )
        return compare_contexts(current_roles, target_roles, current_teams, target_teams)

    async def analyze_entity_ribbon(
        self,
        entity_logical_name: str,
        ui_context: str = "HomePageGrid",
        skip_cache: bool = False,
    ) -> list[Command]:
        """Parse the entity's full ribbon definition into commands for ``ui_context``."""
        if self.ribbon_source is None:
            raise CommandBarAnalysisError("No ribbon payload source configured")
        location_filter = _LOCATION_FILTERS.get(ui_context, "All")
        xml = await self.ribbon_source.fetch_ribbon_payload(entity_logical_name, location_filter, skip_cache)
        return parse_ribbon_xml_for_commands(xml, ui_context)

    def try_evaluate_custom_rule(
        self,
        library: str | None,
        function_name: str | None,
        primary_control: Any = None,
    ) -> CustomRuleEvaluation:
        """Best-effort run of a custom rule function; never part of a comparison verdict."""
        return self.custom_rule_resolver.try_evaluate(library, function_name, primary_control)

    # ------------------------------------------------------------------
    # Data collection
    # ------------------------------------------------------------------

    async def _resolve_current_user(self, current_user_id: str | None) -> str:
        if current_user_id:
            return current_user_id
        session_user_id = await self._guarded(
            "current_session_user", self.data_source.resolve_current_session_user_id(), None
        )
        if not session_user_id:
            raise CurrentUserUnresolvedError()
        return session_user_id

    async def _fetch_comparison_data(
        self,
        current_user_id: str,
        target_user_id: str,
        entity: str,
        ui_context: str,
    ) -> _ComparisonData:
        source = self.data_source
        misc_privileges = misc_privileges_for_context(ui_context)
        (
            solutions,
            publishers,
            ribbon_diffs,
            modern_commands,
            hidden_actions,
            capabilities,
            current_privileges,
            target_privileges,
            current_misc_privileges,
            target_misc_privileges,
            current_roles,
            target_roles,
            current_teams,
            target_teams,
        ) = await asyncio.gather(
            self._guarded("solutions", source.fetch_solutions(), []),
            self._guarded("publishers", source.fetch_publishers(), []),
            self._guarded("ribbon_diffs", source.fetch_ribbon_diffs(entity, ui_context), []),
            self._guarded("modern_commands", source.fetch_modern_commands(entity, ui_context), []),
            self._guarded("hidden_actions", source.fetch_hidden_actions(entity, ui_context), []),
            self._guarded("entity_capabilities", source.fetch_entity_capabilities(entity), EntityCapabilities()),
            self._guarded("current_user_privileges", source.fetch_user_privileges(current_user_id, entity), PrivilegeSet()),
            self._guarded("target_user_privileges", source.fetch_user_privileges(target_user_id, entity), PrivilegeSet()),
            self._check_misc_privileges(current_user_id, misc_privileges),
            self._check_misc_privileges(target_user_id, misc_privileges),
            self._guarded("current_user_roles", source.fetch_user_roles(current_user_id), []),
            self._guarded("target_user_roles", source.fetch_user_roles(target_user_id), []),
            self._guarded("current_user_teams", source.fetch_user_teams(current_user_id), []),
            self._guarded("target_user_teams", source.fetch_user_teams(target_user_id), []),
        )
        return _ComparisonData(
            solutions=solutions or [],
            publishers=publishers or [],
            ribbon_diffs=ribbon_diffs or [],
            modern_commands=modern_commands or [],
            hidden_actions=hidden_actions or [],
            capabilities=capabilities if capabilities is not None else EntityCapabilities(),
            current_privileges=current_privileges if current_privileges is not None else PrivilegeSet(),
            target_privileges=target_privileges if target_privileges is not None else PrivilegeSet(),
            current_misc_privileges=current_misc_privileges,
            target_misc_privileges=target_misc_privileges,
            current_roles=current_roles or [],
            target_roles=target_roles or [],
            current_teams=current_teams or [],
            target_teams=target_teams or [],
        )

    async def _check_misc_privileges(self, user_id: str, privilege_names: list[str]) -> dict[str, bool]:
        # A lookup that cannot be performed assumes the privilege is held.
        checks = [
            self._guarded(
                f"misc_privilege:{name}",
                self.data_source.check_user_privilege_by_name(user_id, name),
                True,
            )
            for name in privilege_names
        ]
        outcomes = await asyncio.gather(*checks)
        return {name: bool(outcome) for name, outcome in zip(privilege_names, outcomes)}

    async def _guarded(self, fetch_name: str, awaitable: Awaitable[T], fallback: T) -> T:
        try:
            return await awaitable
        except Exception as error:  # noqa: BLE001
            LOGGER.warning(
                "comparison data fetch failed",
                extra={"event": "analyzer.fetch.failed", "fetch": fetch_name, "error": str(error)},
            )
            return fallback

    # ------------------------------------------------------------------
    # Standard commands
    # ------------------------------------------------------------------

    def _process_standard_commands(
        self,
        ui_context: str,
        data: _ComparisonData,
        state: _RunState,
    ) -> list[CommandComparisonResult]:
        results: list[CommandComparisonResult] = []
        for command in standard_commands_for_context(ui_context):
            if not state.admit(command.id):
                continue

            capability = command.entity_capability
            if capability is not None and not data.capabilities.supports(capability):
                reason = f"Entity does not have {capability.value}"
                results.append(
                    _standard_result(
                        command,
                        state.entity,
                        _UserVisibility(False, [reason]),
                        _UserVisibility(False, [reason]),
                        Difference.SAME,
                        EvaluationMethod.ENTITY_PROPERTY,
                    )
                )
                continue

            current = _standard_visibility(command, data.current_privileges, data.current_misc_privileges)
            target = _standard_visibility(command, data.target_privileges, data.target_misc_privileges)
            results.append(
                _standard_result(
                    command,
                    state.entity,
                    current,
                    target,
                    _visibility_difference(current.can_see, target.can_see),
                    EvaluationMethod.PRIVILEGE_BASED,
                )
            )
        return results

    # ------------------------------------------------------------------
    # Ribbon-diff customizations
    # ------------------------------------------------------------------

    def _process_ribbon_diffs(self, data: _ComparisonData, state: _RunState) -> list[CommandComparisonResult]:
        results: list[CommandComparisonResult] = []
        for diff in data.ribbon_diffs:
            if not state.admit(diff.id):
                continue

            command = parse_ribbon_diff_command(diff.id, diff.rule_xml_fragment)
            outcome = _evaluate_rule_list(
                command.all_rules, data.current_privileges, data.target_privileges, state.entity
            )
            difference = _qualify_difference(
                outcome.current, outcome.target, outcome.has_custom_rules, state.security
            )
            if not outcome.has_custom_rules:
                method = EvaluationMethod.PRIVILEGE_BASED
            elif state.security.security_context_match:
                method = EvaluationMethod.SECURITY_CONTEXT_MATCH
            else:
                method = EvaluationMethod.SECURITY_CONTEXT_DIFFERS

            solution, publisher = state.solution_and_publisher(diff.solution_id)
            results.append(
                CommandComparisonResult(
                    command_id=command.id,
                    name=command.name,
                    is_ootb=command.is_ootb,
                    has_custom_rules=outcome.has_custom_rules,
                    difference=difference,
                    evaluation_method=method,
                    current_user_blocked_by=outcome.current.blocked_by,
                    target_user_blocked_by=outcome.target.blocked_by,
                    entity=diff.entity or "All Entities",
                    solution_name=solution.friendly_name if solution else "Unknown",
                    publisher_name=publisher.friendly_name if publisher else "Unknown",
                    is_managed=diff.is_managed,
                    visible_to_current_user=outcome.current.can_see,
                    visible_to_target_user=outcome.target.can_see,
                    rules=[rule.id for rule in command.all_rules],
                    custom_rule_details=outcome.custom_rule_details,
                )
            )
        return results

    # ------------------------------------------------------------------
    # Modern commands
    # ------------------------------------------------------------------

    def _process_modern_commands(self, data: _ComparisonData, state: _RunState) -> list[CommandComparisonResult]:
        results: list[CommandComparisonResult] = []
        for action in data.modern_commands:
            command_id = action.unique_name or action.id
            if action.hidden or not state.admit(command_id):
                continue

            current = _UserVisibility()
            target = _UserVisibility()
            has_custom_rules = False
            details: list[CustomRuleDetail] = []
            rules: list[str] = []

            if action.visibility_type is ModernVisibilityType.ALWAYS:
                method = EvaluationMethod.ALWAYS_VISIBLE
            elif action.visibility_type is ModernVisibilityType.FORMULA:
                method = EvaluationMethod.POWER_FX_FORMULA
                has_custom_rules = True
                rules = ["Visibility Formula"]
                reason = "Power Fx expression"
                if action.visibility_formula_function_name:
                    reason = f"Power Fx expression ({action.visibility_formula_function_name})"
                details = [CustomRuleDetail(rule_id="VisibilityFormula", reason=reason)]
            else:
                method = EvaluationMethod.CLASSIC_RULES
                references = [
                    RuleReference(id=rule_id, is_custom=not is_platform_id(rule_id))
                    for rule_id in action.display_rule_ids
                ]
                if references:
                    outcome = _evaluate_rule_list(
                        references, data.current_privileges, data.target_privileges, state.entity
                    )
                    current, target = outcome.current, outcome.target
                    has_custom_rules = outcome.has_custom_rules
                    details = outcome.custom_rule_details
                    rules = [reference.id for reference in references]
                else:
                    has_custom_rules = True
                    rules = ["Classic Rules"]
                    details = [CustomRuleDetail(rule_id="ClassicRules", reason="Legacy ribbon rules")]

            difference = _qualify_difference(current, target, has_custom_rules, state.security)

            solution, publisher = state.solution_and_publisher(action.solution_id)
            results.append(
                CommandComparisonResult(
                    command_id=command_id,
                    name=action.label or action.unique_name or action.id,
                    is_ootb=False,
                    is_modern_command=True,
                    has_custom_rules=has_custom_rules,
                    difference=difference,
                    evaluation_method=method,
                    current_user_blocked_by=current.blocked_by,
                    target_user_blocked_by=target.blocked_by,
                    entity=action.context_value or "All Entities",
                    solution_name=solution.friendly_name if solution else "Active",
                    publisher_name=publisher.friendly_name if publisher else "Default Publisher",
                    is_managed=action.is_managed,
                    visible_to_current_user=current.can_see and difference is not Difference.ONLY_TARGET,
                    visible_to_target_user=target.can_see and difference is not Difference.ONLY_CURRENT,
                    rules=rules,
                    custom_rule_details=details,
                )
            )
        return results


def _standard_visibility(
    command: StandardCommand,
    privileges: PrivilegeSet,
    misc_privileges: dict[str, bool],
) -> _UserVisibility:
    has_privilege = privileges.has(command.required_privilege)
    has_misc_privilege = True
    if command.misc_privilege:
        has_misc_privilege = misc_privileges.get(command.misc_privilege, True)

    blocked_by: list[str] = []
    if not has_privilege:
        blocked_by.append(f"Missing {command.required_privilege.label} privilege")
    if not has_misc_privilege:
        blocked_by.append(f"Missing {command.misc_privilege}")
    return _UserVisibility(has_privilege and has_misc_privilege, blocked_by)


def _standard_result(
    command: StandardCommand,
    entity: str,
    current: _UserVisibility,
    target: _UserVisibility,
    difference: Difference,
    method: EvaluationMethod,
) -> CommandComparisonResult:
    rules = [command.required_privilege.label]
    if command.misc_privilege:
        rules.append(command.misc_privilege)
    if command.entity_capability is not None:
        rules.append(command.entity_capability.value)
    return CommandComparisonResult(
        command_id=command.id,
        name=command.name,
        is_ootb=True,
        difference=difference,
        evaluation_method=method,
        current_user_blocked_by=current.blocked_by,
        target_user_blocked_by=target.blocked_by,
        description=command.description,
        entity=entity or "All Entities",
        solution_name="System (OOTB)",
        publisher_name="Microsoft",
        is_managed=True,
        visible_to_current_user=current.can_see,
        visible_to_target_user=target.can_see,
        rules=rules,
        selection_required=command.selection_required,
    )


def _evaluate_rule_list(
    references: list[RuleReference],
    current_privileges: PrivilegeSet,
    target_privileges: PrivilegeSet,
    entity: str,
) -> _RuleListOutcome:
    """AND every rule for both users; non-evaluable rules only flag the command."""
    current = _UserVisibility()
    target = _UserVisibility()
    has_custom_rules = False
    details: list[CustomRuleDetail] = []

    for reference in references:
        current_verdict = evaluate_reference(reference, current_privileges, entity)
        target_verdict = evaluate_reference(reference, target_privileges, entity)

        if current_verdict.can_evaluate and target_verdict.can_evaluate:
            if not current_verdict.passes:
                current.can_see = False
                current.blocked_by.append(f"{reference.id}: {current_verdict.reason}")
            if not target_verdict.passes:
                target.can_see = False
                target.blocked_by.append(f"{reference.id}: {target_verdict.reason}")
        else:
            has_custom_rules = True
            details.append(CustomRuleDetail(rule_id=reference.id, reason=current_verdict.reason))

    return _RuleListOutcome(current, target, has_custom_rules, details)


def _qualify_difference(
    current: _UserVisibility,
    target: _UserVisibility,
    has_custom_rules: bool,
    security: SecurityContextComparison,
) -> Difference:
    """Downgrade "same" to "potential-difference" when it rests on custom rules.

    Only applies while both users pass every evaluable rule: rules are ANDed,
    so a command an evaluable rule blocks for both stays hidden for both.
    """
    difference = _visibility_difference(current.can_see, target.can_see)
    if not (current.can_see and target.can_see):
        return difference
    if not has_custom_rules or security.security_context_match:
        return difference
    evidence_current, evidence_target = blocking_evidence(security)
    current.blocked_by.extend(evidence_current)
    target.blocked_by.extend(evidence_target)
    return Difference.POTENTIAL_DIFFERENCE


def _visibility_difference(current_can_see: bool, target_can_see: bool) -> Difference:
    if current_can_see and not target_can_see:
        return Difference.ONLY_CURRENT
    if target_can_see and not current_can_see:
        return Difference.ONLY_TARGET
    return Difference.SAME


def _build_summary(
    results: list[CommandComparisonResult],
    hidden_commands: int,
    ui_context: str,
    entity: str | None,
    security: SecurityContextComparison,
) -> ComparisonSummary:
    def count(difference: Difference) -> int:
        return sum(1 for item in results if item.difference is difference)

    ootb = sum(1 for item in results if item.is_ootb)
    only_current = count(Difference.ONLY_CURRENT)
    only_target = count(Difference.ONLY_TARGET)
    return ComparisonSummary(
        total_commands=len(results),
        ootb_commands=ootb,
        hidden_commands=hidden_commands,
        custom_commands=len(results) - ootb,
        managed_commands=sum(1 for item in results if item.is_managed),
        unmanaged_commands=sum(1 for item in results if not item.is_managed and not item.is_ootb),
        differences=only_current + only_target,
        potential_differences=count(Difference.POTENTIAL_DIFFERENCE),
        only_current_user=only_current,
        only_target_user=only_target,
        same_visibility=count(Difference.SAME),
        context=ui_context,
        entity=entity or "Global",
        security_comparison=SecuritySummary(
            roles_match=security.roles_match,
            teams_match=security.teams_match,
            shared_roles=len(security.roles.shared),
            shared_teams=len(security.teams.shared),
            roles_only_current=security.roles.only_current,
            roles_only_target=security.roles.only_target,
            teams_only_current=security.teams.only_current,
            teams_only_target=security.teams.only_target,
        ),
    )
