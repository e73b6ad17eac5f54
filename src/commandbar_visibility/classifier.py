"""Rule definition classifier.

Most rule references in a fetched payload carry only an id, so classification
falls back to the known-id tables whenever no definition node is available.
"""

from __future__ import annotations

from lxml import etree

from commandbar_visibility.models import PrivilegeKind, RuleDefinition, RuleParameter, RuleType
from commandbar_visibility.rule_catalog import (
    ALWAYS_HIDE_RULES,
    ALWAYS_SHOW_RULES,
    PRIVILEGE_RULES,
    is_platform_id,
)

_PRIVILEGE_KINDS = {kind.value for kind in PrivilegeKind}


def classify_rule(rule_node: etree._Element | None, rule_id: str) -> RuleDefinition:
    """Assign a taxonomy type and type-specific payload to a rule.

    Args:
        rule_node: The rule's definition element, or ``None`` when the payload
            only carries the id.
        rule_id: The rule id, used for table inference.

    Returns:
        A RuleDefinition; ``RuleType.UNKNOWN`` when nothing matches.
    """
    if rule_node is not None:
        definition = _classify_node(rule_node)
        if definition is not None:
            return definition
    return _classify_id(rule_id)


def _classify_id(rule_id: str) -> RuleDefinition:
    privilege = PRIVILEGE_RULES.get(rule_id)
    if privilege is not None:
        return RuleDefinition(type=RuleType.ENTITY_PRIVILEGE_RULE, privilege=privilege.value)
    if rule_id in ALWAYS_HIDE_RULES:
        return RuleDefinition(type=RuleType.ALWAYS_HIDE)
    if rule_id in ALWAYS_SHOW_RULES:
        return RuleDefinition(type=RuleType.ALWAYS_SHOW)
    if rule_id and not is_platform_id(rule_id):
        return RuleDefinition(type=RuleType.CUSTOM_RULE, is_javascript=True)
    return RuleDefinition(type=RuleType.UNKNOWN)


def _classify_node(node: etree._Element) -> RuleDefinition | None:
    privilege_rule = _first_descendant(node, "EntityPrivilegeRule")
    if privilege_rule is not None:
        return RuleDefinition(
            type=RuleType.ENTITY_PRIVILEGE_RULE,
            privilege=_normalize_privilege(
                privilege_rule.get("PrivilegeType") or privilege_rule.get("AppliesTo")
            ),
            entity_name=privilege_rule.get("EntityName"),
        )

    custom_rule = _first_descendant(node, "CustomRule")
    if custom_rule is not None:
        parameters = [
            RuleParameter(type=child.tag, name=child.get("Name"), value=child.get("Value"))
            for child in custom_rule.iterdescendants()
            if isinstance(child.tag, str) and child.tag.endswith("Parameter")
        ]
        return RuleDefinition(
            type=RuleType.CUSTOM_RULE,
            is_javascript=True,
            function_name=custom_rule.get("FunctionName"),
            library=custom_rule.get("Library"),
            parameters=parameters,
        )

    form_state_rule = _first_descendant(node, "FormStateRule")
    if form_state_rule is not None:
        return RuleDefinition(type=RuleType.FORM_STATE_RULE, state=form_state_rule.get("State"))

    selection_rule = _first_descendant(node, "SelectionCountRule")
    if selection_rule is not None:
        return RuleDefinition(
            type=RuleType.SELECTION_COUNT_RULE,
            count=selection_rule.get("Minimum") or selection_rule.get("Maximum"),
        )

    value_rule = _first_descendant(node, "ValueRule")
    if value_rule is not None:
        return RuleDefinition(
            type=RuleType.VALUE_RULE,
            field_name=value_rule.get("Field"),
            value=value_rule.get("Value"),
        )

    if _first_descendant(node, "OrRule") is not None:
        return RuleDefinition(type=RuleType.OR_RULE, is_composite=True)
    if _first_descendant(node, "AndRule") is not None:
        return RuleDefinition(type=RuleType.AND_RULE, is_composite=True)

    return None


def _first_descendant(node: etree._Element, tag: str) -> etree._Element | None:
    for child in node.iterdescendants(tag):
        return child
    return None


def _normalize_privilege(raw: str | None) -> str | None:
    if raw is None:
        return None
    lowered = raw.strip().lower()
    return lowered if lowered in _PRIVILEGE_KINDS else raw
