"""Core data models for command bar visibility analysis.

Field names are snake_case in Python; every model also validates from and
serialises to the camelCase names used by the platform's Web API payloads.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RuleType(str, Enum):
    """Rule taxonomy assigned by the classifier."""

    ENTITY_PRIVILEGE_RULE = "EntityPrivilegeRule"
    CUSTOM_RULE = "CustomRule"
    FORM_STATE_RULE = "FormStateRule"
    SELECTION_COUNT_RULE = "SelectionCountRule"
    VALUE_RULE = "ValueRule"
    OR_RULE = "OrRule"
    AND_RULE = "AndRule"
    ALWAYS_SHOW = "AlwaysShow"
    ALWAYS_HIDE = "AlwaysHide"
    UNKNOWN = "Unknown"


class PrivilegeKind(str, Enum):
    """Entity privilege verbs, keyed the way privilege sets store them."""

    READ = "read"
    WRITE = "write"
    CREATE = "create"
    DELETE = "delete"
    SHARE = "share"
    ASSIGN = "assign"
    APPEND = "append"
    APPEND_TO = "appendto"

    @property
    def label(self) -> str:
        """Display form used in verdict reasons, e.g. ``Write``."""
        if self is PrivilegeKind.APPEND_TO:
            return "AppendTo"
        return self.value.capitalize()


class Difference(str, Enum):
    """Cross-user visibility verdict for one command."""

    SAME = "same"
    ONLY_CURRENT = "only-current"
    ONLY_TARGET = "only-target"
    POTENTIAL_DIFFERENCE = "potential-difference"


class EvaluationMethod(str, Enum):
    """How a command's verdict was reached."""

    PRIVILEGE_BASED = "privilege-based"
    ENTITY_PROPERTY = "entity-property"
    SECURITY_CONTEXT_MATCH = "security-context-match"
    SECURITY_CONTEXT_DIFFERS = "security-context-differs"
    ALWAYS_VISIBLE = "always-visible"
    POWER_FX_FORMULA = "power-fx-formula"
    CLASSIC_RULES = "classic-rules"


class UiContext(str, Enum):
    """UI surfaces a command bar can be analysed for."""

    FORM = "Form"
    HOME_PAGE_GRID = "HomePageGrid"
    SUB_GRID = "SubGrid"


class ModernVisibilityType(IntEnum):
    """Visibility model of a modern command (appaction ``visibilitytype``)."""

    ALWAYS = 0
    FORMULA = 1
    CLASSIC_RULES = 2


class EntityCapability(str, Enum):
    """Entity metadata flags that gate standard commands."""

    HAS_NOTES = "HasNotes"
    HAS_ACTIVITIES = "HasActivities"
    IS_CONNECTIONS_ENABLED = "IsConnectionsEnabled"
    IS_VALID_FOR_QUEUE = "IsValidForQueue"
    IS_MAIL_MERGE_ENABLED = "IsMailMergeEnabled"
    IS_DUPLICATE_DETECTION_ENABLED = "IsDuplicateDetectionEnabled"
    IS_ACTIVITY = "IsActivity"
    IS_VALID_FOR_ADVANCED_FIND = "IsValidForAdvancedFind"


# ---------------------------------------------------------------------------
# Rules and commands
# ---------------------------------------------------------------------------


class RuleParameter(_CamelModel):
    """A parameter passed to a custom JavaScript rule."""

    type: str = ""
    name: str | None = None
    value: str | None = None


class RuleDefinition(_CamelModel):
    """Classified rule; only the fields relevant to ``type`` are populated."""

    type: RuleType = RuleType.UNKNOWN
    privilege: str | None = None
    entity_name: str | None = None
    is_javascript: bool = False
    function_name: str | None = None
    library: str | None = None
    parameters: list[RuleParameter] = []
    state: str | None = None
    count: str | None = None
    field_name: str | None = Field(default=None, alias="field")
    value: str | None = None
    is_composite: bool = False


class RuleReference(_CamelModel):
    """A rule id attached to a command's display or enable rule list."""

    id: str
    is_custom: bool = False
    definition: RuleDefinition | None = None


class Command(_CamelModel):
    """A command-bar button together with its visibility rules."""

    id: str
    button_id: str | None = None
    name: str = ""
    is_ootb: bool = Field(default=False, alias="isOOTB")
    is_modern: bool = False
    display_rules: list[RuleReference] = []
    enable_rules: list[RuleReference] = []
    evaluation_method: EvaluationMethod | None = None
    solution_id: str | None = None
    publisher_name: str | None = None
    is_managed: bool | None = None

    @property
    def all_rules(self) -> list[RuleReference]:
        return [*self.display_rules, *self.enable_rules]


# ---------------------------------------------------------------------------
# Security facts
# ---------------------------------------------------------------------------


class PrivilegeEntry(_CamelModel):
    """One privilege fact for a user against an entity."""

    has_privilege: bool = False
    depth: int | None = None


class PrivilegeSet(_CamelModel):
    """Per-verb privilege facts. A missing verb means the privilege is absent."""

    read: PrivilegeEntry | None = None
    write: PrivilegeEntry | None = None
    create: PrivilegeEntry | None = None
    delete: PrivilegeEntry | None = None
    share: PrivilegeEntry | None = None
    assign: PrivilegeEntry | None = None
    append: PrivilegeEntry | None = None
    appendto: PrivilegeEntry | None = None

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_bare_flags(cls, value: Any) -> Any:
        # Some upstream payloads report a verb as a plain boolean.
        if isinstance(value, bool):
            return {"hasPrivilege": value}
        return value

    def has(self, kind: PrivilegeKind | str) -> bool:
        if not isinstance(kind, PrivilegeKind):
            kind = PrivilegeKind(kind.lower())
        entry = getattr(self, kind.value)
        return bool(entry is not None and entry.has_privilege)


class SecurityPrincipal(_CamelModel):
    """A role or team, compared by ``id`` and displayed by ``name``."""

    id: str
    name: str = ""


class SecurityContext(_CamelModel):
    roles: list[SecurityPrincipal] = []
    teams: list[SecurityPrincipal] = []


class EvaluationVerdict(_CamelModel):
    """Outcome of evaluating one rule for one user."""

    passes: bool
    can_evaluate: bool
    reason: str


class PrincipalDiff(_CamelModel):
    shared: list[SecurityPrincipal] = []
    only_current: list[SecurityPrincipal] = []
    only_target: list[SecurityPrincipal] = []


class SecurityContextComparison(_CamelModel):
    """Role and team diff between the current and the target user."""

    roles_match: bool = True
    teams_match: bool = True
    security_context_match: bool = True
    roles: PrincipalDiff = Field(default_factory=PrincipalDiff)
    teams: PrincipalDiff = Field(default_factory=PrincipalDiff)


# ---------------------------------------------------------------------------
# Comparison output
# ---------------------------------------------------------------------------


class CustomRuleDetail(_CamelModel):
    rule_id: str
    reason: str


class CommandComparisonResult(_CamelModel):
    """Per-command verdict comparing the current and the target user."""

    command_id: str
    name: str
    is_ootb: bool = Field(default=False, alias="isOOTB")
    is_modern_command: bool = False
    has_custom_rules: bool = False
    difference: Difference = Difference.SAME
    evaluation_method: EvaluationMethod = EvaluationMethod.PRIVILEGE_BASED
    current_user_blocked_by: list[str] = []
    target_user_blocked_by: list[str] = []
    description: str | None = None
    entity: str = "All Entities"
    solution_name: str | None = None
    publisher_name: str | None = None
    is_managed: bool = False
    visible_to_current_user: bool = True
    visible_to_target_user: bool = True
    rules: list[str] = []
    custom_rule_details: list[CustomRuleDetail] = []
    selection_required: bool = False


class SecuritySummary(_CamelModel):
    roles_match: bool = True
    teams_match: bool = True
    shared_roles: int = 0
    shared_teams: int = 0
    roles_only_current: list[SecurityPrincipal] = []
    roles_only_target: list[SecurityPrincipal] = []
    teams_only_current: list[SecurityPrincipal] = []
    teams_only_target: list[SecurityPrincipal] = []


class ComparisonSummary(_CamelModel):
    """Counters describing one comparison run."""

    total_commands: int = 0
    ootb_commands: int = 0
    hidden_commands: int = 0
    custom_commands: int = 0
    managed_commands: int = 0
    unmanaged_commands: int = 0
    differences: int = 0
    potential_differences: int = 0
    only_current_user: int = 0
    only_target_user: int = 0
    same_visibility: int = 0
    context: str = ""
    entity: str = "Global"
    security_comparison: SecuritySummary = Field(default_factory=SecuritySummary)


class ComparisonReport(_CamelModel):
    commands: list[CommandComparisonResult] = []
    summary: ComparisonSummary = Field(default_factory=ComparisonSummary)


# ---------------------------------------------------------------------------
# Upstream records (already resolved by the data-access layer)
# ---------------------------------------------------------------------------


class Solution(_CamelModel):
    id: str
    unique_name: str = ""
    friendly_name: str = ""
    publisher_id: str | None = None


class Publisher(_CamelModel):
    id: str
    unique_name: str = ""
    friendly_name: str = ""


class RibbonDiffRecord(_CamelModel):
    """A solution-layer ribbon customization for an entity and UI surface."""

    id: str
    entity: str | None = None
    solution_id: str | None = None
    is_managed: bool = False
    rule_xml_fragment: str | None = None


class ModernCommandRecord(_CamelModel):
    """A modern (appaction) command definition."""

    id: str
    unique_name: str | None = None
    label: str | None = None
    visibility_type: ModernVisibilityType = ModernVisibilityType.ALWAYS
    visibility_formula_function_name: str | None = None
    hidden: bool = False
    solution_id: str | None = None
    is_managed: bool = False
    context_value: str | None = None
    display_rule_ids: list[str] = []


class HiddenActionRecord(_CamelModel):
    id: str
    hidden_command_id: str


_CAPABILITY_FIELDS: dict[EntityCapability, str] = {
    EntityCapability.HAS_NOTES: "has_notes",
    EntityCapability.HAS_ACTIVITIES: "has_activities",
    EntityCapability.IS_CONNECTIONS_ENABLED: "is_connections_enabled",
    EntityCapability.IS_VALID_FOR_QUEUE: "is_valid_for_queue",
    EntityCapability.IS_MAIL_MERGE_ENABLED: "is_mail_merge_enabled",
    EntityCapability.IS_DUPLICATE_DETECTION_ENABLED: "is_duplicate_detection_enabled",
    EntityCapability.IS_ACTIVITY: "is_activity",
    EntityCapability.IS_VALID_FOR_ADVANCED_FIND: "is_valid_for_advanced_find",
}


class EntityCapabilities(_CamelModel):
    """Entity metadata flags. Unknown flags read as unsupported."""

    has_activities: bool = False
    has_notes: bool = False
    is_connections_enabled: bool = False
    is_valid_for_queue: bool = False
    is_mail_merge_enabled: bool = False
    is_duplicate_detection_enabled: bool = False
    is_activity: bool = False
    is_valid_for_advanced_find: bool = True

    def supports(self, capability: EntityCapability | str) -> bool:
        return bool(getattr(self, _CAPABILITY_FIELDS[EntityCapability(capability)]))
