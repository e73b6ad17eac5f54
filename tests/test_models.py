"""Tests for commandbar_visibility.models: aliases, defaults and helpers."""

from __future__ import annotations

from commandbar_visibility.models import (
    Command,
    CommandComparisonResult,
    ComparisonReport,
    Difference,
    EntityCapabilities,
    EntityCapability,
    EvaluationMethod,
    ModernCommandRecord,
    ModernVisibilityType,
    PrivilegeKind,
    PrivilegeSet,
    RuleDefinition,
    RuleReference,
    RuleType,
)


class TestPrivilegeKind:
    def test_labels(self) -> None:
        assert PrivilegeKind.WRITE.label == "Write"
        assert PrivilegeKind.APPEND_TO.label == "AppendTo"


class TestPrivilegeSet:
    def test_missing_kind_is_absent(self) -> None:
        privileges = PrivilegeSet()
        assert privileges.has(PrivilegeKind.READ) is False

    def test_camel_case_entries(self) -> None:
        privileges = PrivilegeSet.model_validate({"write": {"hasPrivilege": True, "depth": 2}})
        assert privileges.has(PrivilegeKind.WRITE) is True
        assert privileges.write is not None
        assert privileges.write.depth == 2

    def test_bare_boolean_flags(self) -> None:
        privileges = PrivilegeSet.model_validate({"delete": True, "share": False})
        assert privileges.has("delete") is True
        assert privileges.has("share") is False

    def test_has_accepts_display_case(self) -> None:
        privileges = PrivilegeSet.model_validate({"appendto": True})
        assert privileges.has("AppendTo") is True


class TestRuleDefinition:
    def test_field_alias(self) -> None:
        definition = RuleDefinition.model_validate({"type": "ValueRule", "field": "statecode", "value": "0"})
        assert definition.type is RuleType.VALUE_RULE
        assert definition.field_name == "statecode"
        assert definition.model_dump(by_alias=True)["field"] == "statecode"

    def test_defaults_to_unknown(self) -> None:
        assert RuleDefinition().type is RuleType.UNKNOWN


class TestCommand:
    def test_all_rules_lists_display_then_enable(self) -> None:
        command = Command(
            id="Mscrm.SavePrimaryRecord",
            display_rules=[RuleReference(id="Mscrm.HideOnModern")],
            enable_rules=[RuleReference(id="Mscrm.CanSavePrimary")],
        )
        assert [rule.id for rule in command.all_rules] == ["Mscrm.HideOnModern", "Mscrm.CanSavePrimary"]

    def test_ootb_alias(self) -> None:
        command = Command.model_validate({"id": "Mscrm.SavePrimaryRecord", "isOOTB": True})
        assert command.is_ootb is True
        assert command.model_dump(by_alias=True)["isOOTB"] is True


class TestCommandComparisonResult:
    def test_serialises_camel_case(self) -> None:
        result = CommandComparisonResult(
            command_id="Mscrm.DeleteSelectedRecord",
            name="Delete",
            is_ootb=True,
            difference=Difference.ONLY_CURRENT,
            target_user_blocked_by=["Missing Delete privilege"],
        )
        data = result.model_dump(mode="json", by_alias=True)
        assert data["commandId"] == "Mscrm.DeleteSelectedRecord"
        assert data["isOOTB"] is True
        assert data["difference"] == "only-current"
        assert data["evaluationMethod"] == "privilege-based"
        assert data["targetUserBlockedBy"] == ["Missing Delete privilege"]

    def test_lists_are_not_shared(self) -> None:
        first = CommandComparisonResult(command_id="a", name="a")
        second = CommandComparisonResult(command_id="b", name="b")
        first.current_user_blocked_by.append("x")
        assert second.current_user_blocked_by == []


class TestComparisonReport:
    def test_json_roundtrip(self) -> None:
        report = ComparisonReport(
            commands=[
                CommandComparisonResult(
                    command_id="m1",
                    name="Approve",
                    evaluation_method=EvaluationMethod.POWER_FX_FORMULA,
                    has_custom_rules=True,
                )
            ]
        )
        restored = ComparisonReport.model_validate_json(report.model_dump_json(by_alias=True))
        assert restored == report


class TestUpstreamRecords:
    def test_modern_command_visibility_type(self) -> None:
        record = ModernCommandRecord.model_validate({"id": "m1", "uniqueName": "contoso_Approve", "visibilityType": 1})
        assert record.visibility_type is ModernVisibilityType.FORMULA
        assert record.display_rule_ids == []

    def test_entity_capability_defaults(self) -> None:
        capabilities = EntityCapabilities()
        assert capabilities.supports(EntityCapability.IS_VALID_FOR_ADVANCED_FIND) is True
        assert capabilities.supports("HasActivities") is False

    def test_entity_capabilities_from_camel_case(self) -> None:
        capabilities = EntityCapabilities.model_validate({"hasNotes": True, "isValidForQueue": True})
        assert capabilities.supports(EntityCapability.HAS_NOTES) is True
        assert capabilities.supports(EntityCapability.IS_VALID_FOR_QUEUE) is True
