"""Tests for commandbar_visibility.ribbon_parser: ribbon XML to commands."""

from __future__ import annotations

import pytest

from commandbar_visibility.models import RuleType
from commandbar_visibility.ribbon_parser import (
    command_matches_context,
    extract_command_name,
    extract_label_from_id,
    parse_ribbon_diff_command,
    parse_ribbon_diff_xml,
    parse_ribbon_xml_for_commands,
)


class TestParseRibbonXmlForCommands:
    @pytest.mark.parametrize("xml", [None, "", "<not valid xml"])
    def test_empty_or_malformed_input(self, xml: str | None) -> None:
        assert parse_ribbon_xml_for_commands(xml) == []

    def test_fragment_with_button_and_definition(self) -> None:
        xml = '<Button Id="x" Command="Mscrm.DeleteRecord" LabelText="Delete Record"/><CommandDefinition Id="Mscrm.DeleteRecord"/>'
        commands = parse_ribbon_xml_for_commands(xml, "HomePageGrid")
        assert len(commands) == 1
        assert commands[0].id == "Mscrm.DeleteRecord"
        assert commands[0].name == "Delete Record"
        assert commands[0].is_ootb is True

    def test_buttons_then_orphan_definitions(self, ribbon_xml: str) -> None:
        commands = parse_ribbon_xml_for_commands(ribbon_xml, "HomePageGrid")
        assert [command.id for command in commands] == [
            "Mscrm.DeleteSelectedRecord",
            "contoso.account.Approve.Command",
            "Mscrm.HomepageGrid.account.Orphan",
        ]
        assert commands[2].name == "Orphan"

    def test_rule_references(self, ribbon_xml: str) -> None:
        delete, approve, _ = parse_ribbon_xml_for_commands(ribbon_xml, "HomePageGrid")

        assert [rule.id for rule in delete.display_rules] == ["Mscrm.HideOnModern"]
        assert [rule.id for rule in delete.enable_rules] == [
            "Mscrm.DeleteSelectedEntityPermission",
            "Mscrm.SelectionCountAtLeastOne",
        ]
        assert all(not rule.is_custom for rule in delete.all_rules)

        assert approve.name == "Approve"
        assert approve.is_ootb is False
        rule = approve.display_rules[0]
        assert rule.is_custom is True
        assert rule.definition is not None
        assert rule.definition.type is RuleType.CUSTOM_RULE
        assert rule.definition.function_name == "isApprover"
        assert rule.definition.library == "$webresource:contoso_rules.js"
        assert [parameter.value for parameter in rule.definition.parameters] == ["PrimaryControl", "approve"]

    def test_id_only_rules_are_classified_from_the_id(self, ribbon_xml: str) -> None:
        delete = parse_ribbon_xml_for_commands(ribbon_xml)[0]
        privilege_rule = delete.enable_rules[0]
        assert privilege_rule.definition is not None
        assert privilege_rule.definition.type is RuleType.ENTITY_PRIVILEGE_RULE
        assert privilege_rule.definition.privilege == "delete"

    def test_form_context_drops_grid_buttons(self, ribbon_xml: str) -> None:
        ids = [command.id for command in parse_ribbon_xml_for_commands(ribbon_xml, "Form")]
        assert "Mscrm.HomepageGrid.account.Orphan" not in ids
        assert "contoso.account.Approve.Command" in ids

    def test_buttons_without_command_are_skipped(self, ribbon_xml: str) -> None:
        names = [command.name for command in parse_ribbon_xml_for_commands(ribbon_xml)]
        assert "Ignored" not in names

    def test_rule_without_id_is_skipped(self) -> None:
        xml = """<CommandDefinition Id="Mscrm.SaveAndClose">
  <EnableRules><EnableRule /><EnableRule Id="Mscrm.CanSavePrimary" /></EnableRules>
</CommandDefinition>"""
        command = parse_ribbon_xml_for_commands(xml)[0]
        assert [rule.id for rule in command.enable_rules] == ["Mscrm.CanSavePrimary"]


class TestRibbonDiff:
    DIFF = """<CommandDefinition Id="contoso.account.Approve">
  <DisplayRules><DisplayRule Id="Mscrm.HideOnModern" /></DisplayRules>
  <EnableRules>
    <EnableRule Id="Mscrm.CanWritePrimary" />
    <EnableRule Id="Mscrm.CanWritePrimary" />
    <EnableRule Id="contoso.account.IsApprover" />
  </EnableRules>
</CommandDefinition>"""

    def test_rule_ids_are_deduplicated(self) -> None:
        display, enable = parse_ribbon_diff_xml(self.DIFF)
        assert display == ["Mscrm.HideOnModern"]
        assert enable == ["Mscrm.CanWritePrimary", "contoso.account.IsApprover"]

    def test_malformed_diff(self) -> None:
        assert parse_ribbon_diff_xml("<CommandDefinition") == ([], [])
        assert parse_ribbon_diff_xml(None) == ([], [])

    def test_diff_command(self) -> None:
        command = parse_ribbon_diff_command("contoso.account.Approve", self.DIFF)
        assert command.name == "Approve"
        assert command.is_ootb is False
        assert [rule.id for rule in command.all_rules] == [
            "Mscrm.HideOnModern",
            "Mscrm.CanWritePrimary",
            "contoso.account.IsApprover",
        ]
        assert command.enable_rules[1].is_custom is True

    def test_diff_command_without_payload(self) -> None:
        command = parse_ribbon_diff_command("Mscrm.SavePrimaryRecord", None)
        assert command.all_rules == []
        assert command.name == "Save Primary Record"
        assert command.is_ootb is True


class TestLabels:
    @pytest.mark.parametrize(
        ("identifier", "label"),
        [
            ("Mscrm.HomepageGrid.account.DeleteSelectedRecord", "Delete Selected Record"),
            ("Mscrm.SavePrimaryRecord", "Save Primary Record"),
            ("Grid.ExportButton", "Export"),
            ("new_account.Approve.Command", "Approve"),
            ("", ""),
            ("Mscrm.Button", "Mscrm.Button"),
        ],
    )
    def test_extract_label_from_id(self, identifier: str, label: str) -> None:
        assert extract_label_from_id(identifier) == label

    def test_command_name_prefers_label_text(self) -> None:
        rdx = '<Button Id="b" Alt="Alt text" LabelText="Approve Order" />'
        assert extract_command_name(rdx, "contoso.Approve") == "Approve Order"

    def test_command_name_from_description(self) -> None:
        rdx = '<Button Id="b" description="Send Invoice" />'
        assert extract_command_name(rdx, "contoso.Send") == "Send Invoice"

    def test_command_name_falls_back_to_id(self) -> None:
        assert extract_command_name(None, "contoso.account.ApproveOrder") == "Approve Order"


class TestContextMatching:
    @pytest.mark.parametrize(
        ("command_id", "context", "expected"),
        [
            ("Mscrm.SubGrid.account.AddNew", "SubGrid", True),
            ("Mscrm.AddExistingAssociated", "SubGrid", True),
            ("Mscrm.HomepageGrid.account.New", "SubGrid", False),
            ("Mscrm.Form.account.Save", "Form", True),
            ("Mscrm.HomepageGrid.account.Edit", "Form", False),
            ("Mscrm.Form.account.Save", "HomePageGrid", False),
            ("Mscrm.HomepageGrid.account.Edit", "HomePageGrid", True),
            ("anything", "Dashboard", True),
            ("anything", None, True),
        ],
    )
    def test_command_matches_context(self, command_id: str, context: str | None, expected: bool) -> None:
        assert command_matches_context(command_id, context) is expected
