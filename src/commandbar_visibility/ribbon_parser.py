"""Ribbon and ribbon-diff XML parsing.

Turns raw ribbon XML into ``Command`` records with classified rule
references. Parsing never raises: malformed payloads log a warning and
produce empty results.
"""

from __future__ import annotations

import logging
import re

from lxml import etree

from commandbar_visibility.classifier import classify_rule
from commandbar_visibility.models import Command, RuleReference
from commandbar_visibility.rule_catalog import PLATFORM_PREFIX, is_platform_id

LOGGER = logging.getLogger(__name__)

_RULE_TAGS = ("DisplayRule", "EnableRule")
_DEFINITION_TAGS = frozenset({"DisplayRule", "EnableRule", "DisplayRuleDefinition", "EnableRuleDefinition"})
_LABEL_ATTRIBUTES = ("LabelText", "Alt", "ToolTipTitle", "Description", "ToolTipDescription")
_STRUCTURAL_PREFIXES = ("HomePageGrid.", "SubGrid.", "Grid.", "Form.")
_GENERIC_SUFFIXES = ("Button", "Command")
_XML_DECLARATION = re.compile(r"^\s*<\?xml[^>]*\?>")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def parse_ribbon_xml_for_commands(xml: str | None, context: str | None = None) -> list[Command]:
    """Extract commands and their rule references from ribbon XML.

    Args:
        xml: Ribbon XML, a ribbon fragment, or ``None``.
        context: ``Form``, ``HomePageGrid`` or ``SubGrid``; any other value
            (including ``None``) keeps every command.

    Returns:
        Commands in document order: button-backed commands first, then
        command definitions no button references.
    """
    if not xml:
        return []

    root = _parse_document(xml, source="ribbon")
    if root is None:
        return []

    command_definitions: dict[str, etree._Element] = {}
    for element in root.iter("CommandDefinition"):
        command_id = element.get("Id")
        if command_id and command_id not in command_definitions:
            command_definitions[command_id] = element
    rule_definitions = _index_rule_definitions(root)

    commands: dict[str, Command] = {}

    for button in root.iter("Button"):
        command_id = button.get("Command")
        if not command_id:
            continue
        button_id = button.get("Id") or command_id
        if command_id in commands or not command_matches_context(button_id, context):
            continue
        name = _first_attribute(button, _LABEL_ATTRIBUTES) or extract_label_from_id(button_id) or command_id
        commands[command_id] = _build_command(
            command_id,
            button_id,
            name,
            command_definitions.get(command_id),
            rule_definitions,
        )

    for command_id, element in command_definitions.items():
        if command_id in commands or not command_matches_context(command_id, context):
            continue
        commands[command_id] = _build_command(
            command_id,
            command_id,
            extract_label_from_id(command_id) or command_id,
            element,
            rule_definitions,
        )

    return list(commands.values())


def parse_ribbon_diff_xml(rdx: str | None) -> tuple[list[str], list[str]]:
    """Collect the display and enable rule ids mentioned in a ribbon diff.

    Returns:
        ``(display_rule_ids, enable_rule_ids)``, de-duplicated in first-seen order.
    """
    if not rdx:
        return [], []

    root = _parse_document(rdx, source="ribbon_diff")
    if root is None:
        return [], []
    return _collect_rule_ids(root)


def parse_ribbon_diff_command(command_id: str, rdx: str | None) -> Command:
    """Build the command a ribbon-diff customization contributes.

    Every display and enable rule the diff mentions is attached, classified
    from its definition when the diff carries one and from its id otherwise.
    """
    root = _parse_document(rdx, source="ribbon_diff") if rdx else None
    display_ids: list[str] = []
    enable_ids: list[str] = []
    definitions: dict[str, etree._Element] = {}
    if root is not None:
        display_ids, enable_ids = _collect_rule_ids(root)
        definitions = _index_rule_definitions(root)

    return Command(
        id=command_id,
        button_id=command_id,
        name=extract_command_name(rdx, command_id),
        is_ootb=is_platform_id(command_id),
        display_rules=[_rule_reference(rule_id, definitions) for rule_id in display_ids],
        enable_rules=[_rule_reference(rule_id, definitions) for rule_id in enable_ids],
    )


def extract_command_name(rdx: str | None, fallback_id: str) -> str:
    """Best display name for a ribbon-diff command.

    Reads label attributes straight from the raw text so that fragments which
    do not parse still yield a name.
    """
    if rdx:
        for attribute in ("LabelText", "description", "Alt", "ToolTipTitle"):
            match = re.search(rf'\b{attribute}="([^"]+)"', rdx)
            if match:
                return match.group(1)
    return extract_label_from_id(fallback_id) or fallback_id


def extract_label_from_id(identifier: str | None) -> str:
    """Derive a readable label such as ``Delete Selected Record`` from a command id.

    Returns the id unchanged when no readable segment remains, and an empty
    string for an empty id.
    """
    if not identifier:
        return ""

    name = identifier
    if name.lower().startswith(PLATFORM_PREFIX.lower()):
        name = name[len(PLATFORM_PREFIX):]
    stripped = True
    while stripped:
        stripped = False
        for prefix in _STRUCTURAL_PREFIXES:
            if name.lower().startswith(prefix.lower()):
                name = name[len(prefix):]
                stripped = True

    segments = [segment for segment in name.split(".") if segment]
    while segments and segments[-1] in _GENERIC_SUFFIXES:
        segments.pop()
    if not segments:
        return identifier

    segment = segments[-1]
    for suffix in _GENERIC_SUFFIXES:
        if segment.endswith(suffix) and len(segment) > len(suffix):
            segment = segment[: -len(suffix)]
            break

    label = _CAMEL_BOUNDARY.sub(" ", segment).replace("_", " ").strip()
    return label or identifier


def command_matches_context(command_id: str, context: str | None) -> bool:
    """Heuristic match of a command or button id against a UI surface."""
    lowered = command_id.lower()

    if context == "Form":
        return (
            "form" in lowered
            or "primary" in lowered
            or "record" in lowered
            or ("grid" not in lowered and "homepage" not in lowered)
        )

    if context == "SubGrid":
        return (
            "subgrid" in lowered
            or "associated" in lowered
            or ("selected" in lowered and "homepage" not in lowered)
        )

    if context == "HomePageGrid":
        return (
            "grid" in lowered
            or "homepage" in lowered
            or "selected" in lowered
            or "new" in lowered
            or ("form" not in lowered and "subgrid" not in lowered)
        )

    return True


def _build_command(
    command_id: str,
    button_id: str,
    name: str,
    definition: etree._Element | None,
    rule_definitions: dict[str, etree._Element],
) -> Command:
    return Command(
        id=command_id,
        button_id=button_id,
        name=name,
        is_ootb=is_platform_id(command_id),
        display_rules=_extract_rules(definition, "DisplayRule", rule_definitions),
        enable_rules=_extract_rules(definition, "EnableRule", rule_definitions),
    )


def _extract_rules(
    command_definition: etree._Element | None,
    rule_tag: str,
    rule_definitions: dict[str, etree._Element],
) -> list[RuleReference]:
    if command_definition is None:
        return []

    references: list[RuleReference] = []
    for element in command_definition.iterfind(f".//{rule_tag}s//{rule_tag}"):
        rule_id = element.get("Id")
        if rule_id:
            references.append(_rule_reference(rule_id, rule_definitions))
    return references


def _rule_reference(rule_id: str, rule_definitions: dict[str, etree._Element]) -> RuleReference:
    return RuleReference(
        id=rule_id,
        is_custom=not is_platform_id(rule_id),
        definition=classify_rule(rule_definitions.get(rule_id), rule_id),
    )


def _collect_rule_ids(root: etree._Element) -> tuple[list[str], list[str]]:
    display: dict[str, None] = {}
    enable: dict[str, None] = {}
    for element in root.iter(*_RULE_TAGS):
        rule_id = element.get("Id")
        if not rule_id:
            continue
        target = display if element.tag == "DisplayRule" else enable
        target.setdefault(rule_id, None)
    return list(display), list(enable)


def _index_rule_definitions(root: etree._Element) -> dict[str, etree._Element]:
    # Only elements with children carry a definition; bare ones are references.
    definitions: dict[str, etree._Element] = {}
    for element in root.iter(*_DEFINITION_TAGS):
        rule_id = element.get("Id")
        if rule_id and len(element) and rule_id not in definitions:
            definitions[rule_id] = element
    return definitions


def _first_attribute(element: etree._Element, names: tuple[str, ...]) -> str | None:
    for name in names:
        value = element.get(name)
        if value:
            return value
    return None


def _parse_document(xml: str, *, source: str) -> etree._Element | None:
    parser = etree.XMLParser(resolve_entities=False, no_network=True)
    try:
        return etree.fromstring(xml.encode("utf-8"), parser)
    except (etree.XMLSyntaxError, ValueError):
        pass

    # A fragment with several top-level elements parses once given a root.
    fragment = _XML_DECLARATION.sub("", xml, count=1)
    try:
        return etree.fromstring(f"<RibbonFragment>{fragment}</RibbonFragment>".encode("utf-8"), parser)
    except (etree.XMLSyntaxError, ValueError) as error:
        LOGGER.warning(
            "ribbon xml parse failed",
            extra={"event": "ribbon_parser.parse.failed", "source": source, "error": str(error)},
        )
        return None
