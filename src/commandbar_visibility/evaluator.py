"""Privilege rule evaluator.

Rules backed by privilege facts are fail-closed: missing data reads as a
missing privilege. Rules that depend on client-side state or solution logic
are fail-open: they pass with ``can_evaluate=False`` so callers can tell an
assumption from a checked result.
"""

from __future__ import annotations

from typing import Any, Mapping

from commandbar_visibility.models import EvaluationVerdict, PrivilegeKind, PrivilegeSet, RuleReference, RuleType
from commandbar_visibility.rule_catalog import (
    ALWAYS_HIDE_RULES,
    ALWAYS_SHOW_RULES,
    CUSTOM_RULE_PATTERN,
    FORM_STATE_RULES,
    MISC_PRIVILEGE_RULES,
    ORG_SETTING_RULES,
    PRIVILEGE_RULES,
    RECORD_PRIVILEGE_RULE_PATTERN,
    SELECTION_COUNT_RULES,
    VALUE_RULE_PATTERN,
    is_platform_id,
)


def evaluate_rule(
    rule_id: str,
    privileges: PrivilegeSet | Mapping[str, Any] | None,
) -> EvaluationVerdict:
    """Evaluate one rule id against one user's privilege set.

    Args:
        rule_id: Display or enable rule id.
        privileges: The user's privileges for the entity; ``None`` when unknown.

    Returns:
        The verdict with a human-readable reason.
    """
    if rule_id in ALWAYS_HIDE_RULES:
        return EvaluationVerdict(passes=False, can_evaluate=True, reason="Rule always hides on modern UI")

    if rule_id in ALWAYS_SHOW_RULES:
        return EvaluationVerdict(passes=True, can_evaluate=True, reason="Rule always shows on modern UI")

    privilege = PRIVILEGE_RULES.get(rule_id)
    if privilege is not None:
        has_privilege = _as_privilege_set(privileges).has(privilege)
        verb = "has" if has_privilege else "lacks"
        return EvaluationVerdict(
            passes=has_privilege,
            can_evaluate=True,
            reason=f"User {verb} {privilege.label} privilege",
        )

    if RECORD_PRIVILEGE_RULE_PATTERN.search(rule_id):
        return EvaluationVerdict(
            passes=True,
            can_evaluate=False,
            reason="Record privilege rule (depends on specific record ownership)",
        )

    form_state = FORM_STATE_RULES.get(rule_id)
    if form_state is not None:
        return EvaluationVerdict(
            passes=True,
            can_evaluate=False,
            reason=f"Form state rule: {form_state} (context-dependent)",
        )

    if rule_id in SELECTION_COUNT_RULES:
        return EvaluationVerdict(passes=True, can_evaluate=False, reason="Selection count rule (context-dependent)")

    if rule_id in ORG_SETTING_RULES:
        return EvaluationVerdict(
            passes=True,
            can_evaluate=False,
            reason="Organization setting rule (applies to all users)",
        )

    misc_privilege = MISC_PRIVILEGE_RULES.get(rule_id)
    if misc_privilege is not None:
        return EvaluationVerdict(
            passes=True,
            can_evaluate=False,
            reason=f"Miscellaneous privilege: {misc_privilege} (requires additional check)",
        )

    if CUSTOM_RULE_PATTERN.search(rule_id) or (rule_id and not is_platform_id(rule_id)):
        return EvaluationVerdict(
            passes=True,
            can_evaluate=False,
            reason="Custom JavaScript rule (cannot evaluate server-side)",
        )

    if VALUE_RULE_PATTERN.search(rule_id):
        return EvaluationVerdict(passes=True, can_evaluate=False, reason="Value rule (depends on form field values)")

    return EvaluationVerdict(passes=True, can_evaluate=False, reason="Custom/unknown rule - cannot evaluate")


def _as_privilege_set(privileges: PrivilegeSet | Mapping[str, Any] | None) -> PrivilegeSet:
    if privileges is None:
        return PrivilegeSet()
    if isinstance(privileges, PrivilegeSet):
        return privileges
    return PrivilegeSet.model_validate(privileges)


def evaluate_reference(
    reference: RuleReference,
    privileges: PrivilegeSet | Mapping[str, Any] | None,
    entity: str | None = None,
) -> EvaluationVerdict:
    """Evaluate a rule reference, using its classified definition when one was parsed.

    An entity privilege definition for ``entity`` (or for no named entity) is
    checked like a known privilege rule; anything else falls back to
    :func:`evaluate_rule` on the id.
    """
    definition = reference.definition
    if definition is not None and definition.type is RuleType.ENTITY_PRIVILEGE_RULE:
        kind = _privilege_kind(definition.privilege)
        applies_here = definition.entity_name is None or definition.entity_name == entity
        if kind is not None and applies_here and reference.id not in PRIVILEGE_RULES:
            has_privilege = _as_privilege_set(privileges).has(kind)
            verb = "has" if has_privilege else "lacks"
            return EvaluationVerdict(
                passes=has_privilege,
                can_evaluate=True,
                reason=f"User {verb} {kind.label} privilege",
            )
    return evaluate_rule(reference.id, privileges)


def _privilege_kind(raw: str | None) -> PrivilegeKind | None:
    if not raw:
        return None
    try:
        return PrivilegeKind(raw.lower())
    except ValueError:
        return None
