"""Static rule-id taxonomy and standard command catalog.

The tables here are a dataset, not logic: the classifier and the evaluator
both read them, and nothing mutates them at runtime.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from commandbar_visibility.models import EntityCapability, PrivilegeKind, UiContext

PLATFORM_PREFIX = "Mscrm."

PRIVILEGE_RULES: Mapping[str, PrivilegeKind] = MappingProxyType(
    {
        "Mscrm.CreateSelectedEntityPermission": PrivilegeKind.CREATE,
        "Mscrm.CanSavePrimary": PrivilegeKind.WRITE,
        "Mscrm.CanWritePrimary": PrivilegeKind.WRITE,
        "Mscrm.CanWriteSelected": PrivilegeKind.WRITE,
        "Mscrm.WritePrimaryEntityPermission": PrivilegeKind.WRITE,
        "Mscrm.WriteSelectedEntityPermission": PrivilegeKind.WRITE,
        "Mscrm.CanDeletePrimary": PrivilegeKind.DELETE,
        "Mscrm.DeletePrimaryEntityPermission": PrivilegeKind.DELETE,
        "Mscrm.DeleteSelectedEntityPermission": PrivilegeKind.DELETE,
        "Mscrm.AssignSelectedEntityPermission": PrivilegeKind.ASSIGN,
        "Mscrm.SharePrimaryPermission": PrivilegeKind.SHARE,
        "Mscrm.ShareSelectedEntityPermission": PrivilegeKind.SHARE,
        "Mscrm.ReadPrimaryEntityPermission": PrivilegeKind.READ,
        "Mscrm.ReadSelectedEntityPermission": PrivilegeKind.READ,
    }
)

ALWAYS_HIDE_RULES: frozenset[str] = frozenset({"Mscrm.HideOnModern", "Mscrm.HideOnCommandBar"})

ALWAYS_SHOW_RULES: frozenset[str] = frozenset({"Mscrm.ShowOnlyOnModern"})

# rule id -> form state the rule checks
FORM_STATE_RULES: Mapping[str, str] = MappingProxyType(
    {
        "Mscrm.IsFormReadOnly": "ReadOnly",
        "Mscrm.IsFormCreate": "Create",
        "Mscrm.IsFormExisting": "Existing",
        "Mscrm.IsFormDisabled": "Disabled",
    }
)

SELECTION_COUNT_RULES: frozenset[str] = frozenset(
    {
        "Mscrm.SelectionCountExactlyOne",
        "Mscrm.SelectionCountRule",
        "Mscrm.SelectionCountAtLeastOne",
        "Mscrm.NoRecordsSelected",
    }
)

ORG_SETTING_RULES: frozenset[str] = frozenset(
    {
        "Mscrm.IsSharepointEnabled",
        "Mscrm.IsSOPIntegrationEnabled",
        "Mscrm.IsFiscalCalendarDefined",
    }
)

# rule id -> non-entity privilege name
MISC_PRIVILEGE_RULES: Mapping[str, str] = MappingProxyType(
    {
        "Mscrm.CanExportToExcel": "prvExportToExcel",
        "Mscrm.CanMailMerge": "prvMailMerge",
        "Mscrm.CanGoOffline": "prvGoOffline",
        "Mscrm.CanBulkDelete": "prvBulkDelete",
    }
)

CUSTOM_RULE_PATTERN = re.compile(r"CustomRule", re.IGNORECASE)
VALUE_RULE_PATTERN = re.compile(r"ValueRule", re.IGNORECASE)
RECORD_PRIVILEGE_RULE_PATTERN = re.compile(r"RecordPrivilegeRule", re.IGNORECASE)


def is_platform_id(identifier: str) -> bool:
    """Return whether ``identifier`` lives in the reserved platform namespace."""
    return identifier.startswith(PLATFORM_PREFIX)


@dataclass(frozen=True, slots=True)
class StandardCommand:
    """A built-in command with a known privilege requirement.

    Attributes:
        id: Platform command id.
        name: Display name shown on the command bar.
        required_privilege: Entity privilege the command needs.
        context: UI surface the command appears on.
        description: Short human-readable purpose.
        entity_capability: Entity flag that must be set for the command to exist.
        misc_privilege: Non-entity privilege checked by name (e.g. ``prvExportToExcel``).
        selection_required: Command acts on selected grid records.
        selection_count: Exact selection size the command expects.
        entity_override: Entity whose privilege actually applies (views, activities).
    """

    id: str
    name: str
    required_privilege: PrivilegeKind
    context: UiContext
    description: str = ""
    entity_capability: EntityCapability | None = None
    misc_privilege: str | None = None
    selection_required: bool = False
    selection_count: int | None = None
    entity_override: str | None = None


_R, _W, _C, _D = PrivilegeKind.READ, PrivilegeKind.WRITE, PrivilegeKind.CREATE, PrivilegeKind.DELETE
_FORM, _GRID, _SUBGRID = UiContext.FORM, UiContext.HOME_PAGE_GRID, UiContext.SUB_GRID

STANDARD_COMMANDS: tuple[StandardCommand, ...] = (
    # Main form command bar
    StandardCommand("Mscrm.SavePrimaryRecord", "Save", _W, _FORM, "Save the current record"),
    StandardCommand("Mscrm.SaveAndClose", "Save & Close", _W, _FORM, "Save and close the form"),
    StandardCommand("Mscrm.SaveAndNew", "Save & New", _C, _FORM, "Save current and create new record"),
    StandardCommand("Mscrm.DeletePrimaryRecord", "Delete", _D, _FORM, "Delete the current record"),
    StandardCommand(
        "Mscrm.AssignPrimaryRecord", "Assign", PrivilegeKind.ASSIGN, _FORM, "Assign the record to another user/team"
    ),
    StandardCommand(
        "Mscrm.SharePrimaryRecord", "Share", PrivilegeKind.SHARE, _FORM, "Share the record with other users/teams"
    ),
    StandardCommand("Mscrm.DeactivatePrimaryRecord", "Deactivate", _W, _FORM, "Deactivate the current record"),
    StandardCommand("Mscrm.ActivatePrimaryRecord", "Activate", _W, _FORM, "Activate an inactive record"),
    StandardCommand("Mscrm.RefreshPrimaryRecord", "Refresh", _R, _FORM, "Refresh form data"),
    StandardCommand(
        "Mscrm.Form.AddConnection",
        "Connect",
        PrivilegeKind.APPEND,
        _FORM,
        "Add a connection to another record",
        entity_capability=EntityCapability.IS_CONNECTIONS_ENABLED,
    ),
    StandardCommand(
        "Mscrm.AddNoteFromForm",
        "Add Note",
        _C,
        _FORM,
        "Add a note to the record",
        entity_capability=EntityCapability.HAS_NOTES,
        entity_override="annotation",
    ),
    StandardCommand(
        "Mscrm.AddActivityFromForm",
        "Add Activity",
        _C,
        _FORM,
        "Add an activity to the record",
        entity_capability=EntityCapability.HAS_ACTIVITIES,
    ),
    StandardCommand("Mscrm.Form.EmailALink", "Email a Link", _R, _FORM, "Email a link to this record"),
    StandardCommand("Mscrm.Form.CopyShortcut", "Copy Link", _R, _FORM, "Copy record URL to clipboard"),
    StandardCommand("Mscrm.RunWorkflow", "Run Workflow", _R, _FORM, "Run a workflow on the record"),
    StandardCommand("Mscrm.Form.StartDialog", "Start Dialog", _R, _FORM, "Start a dialog process"),
    StandardCommand("Mscrm.Form.WordTemplates", "Word Templates", _R, _FORM, "Generate Word document from template"),
    StandardCommand("Mscrm.Form.ExcelTemplates", "Excel Templates", _R, _FORM, "Export to Excel template"),
    StandardCommand("Mscrm.Form.RunReport", "Run Report", _R, _FORM, "Run a report from form"),
    StandardCommand(
        "Mscrm.Form.DetectDuplicates",
        "Detect Duplicates",
        _R,
        _FORM,
        "Detect duplicates of current record",
        entity_capability=EntityCapability.IS_DUPLICATE_DETECTION_ENABLED,
    ),
    # Home page grid
    StandardCommand("Mscrm.NewRecordFromGrid", "New", _C, _GRID, "Create a new record"),
    StandardCommand(
        "Mscrm.DeleteSelectedRecord", "Delete", _D, _GRID, "Delete selected record(s)", selection_required=True
    ),
    StandardCommand("Mscrm.EditSelectedRecord", "Edit", _W, _GRID, "Edit selected record", selection_required=True),
    StandardCommand(
        "Mscrm.ActivateSelectedRecord", "Activate", _W, _GRID, "Activate selected record(s)", selection_required=True
    ),
    StandardCommand(
        "Mscrm.DeactivateSelectedRecord",
        "Deactivate",
        _W,
        _GRID,
        "Deactivate selected record(s)",
        selection_required=True,
    ),
    StandardCommand(
        "Mscrm.AssignSelectedRecord",
        "Assign",
        PrivilegeKind.ASSIGN,
        _GRID,
        "Assign selected record to user/team",
        selection_required=True,
    ),
    StandardCommand(
        "Mscrm.ShareSelectedRecord",
        "Share",
        PrivilegeKind.SHARE,
        _GRID,
        "Share selected record with users/teams",
        selection_required=True,
    ),
    StandardCommand(
        "Mscrm.ExportToExcel",
        "Export to Excel",
        _R,
        _GRID,
        "Export grid data to Excel",
        misc_privilege="prvExportToExcel",
    ),
    StandardCommand(
        "Mscrm.ImportFromExcel",
        "Import from Excel",
        _C,
        _GRID,
        "Import data from Excel",
        misc_privilege="prvImportExportData",
    ),
    StandardCommand("Mscrm.RefreshGrid", "Refresh", _R, _GRID, "Refresh the grid data"),
    StandardCommand("Mscrm.OpenCharts", "Show Chart", _R, _GRID, "Show/hide chart pane"),
    StandardCommand(
        "Mscrm.Grid.RunWorkflow", "Run Workflow", _R, _GRID, "Run workflow on selected records", selection_required=True
    ),
    StandardCommand(
        "Mscrm.Grid.AddConnection",
        "Connect",
        PrivilegeKind.APPEND,
        _GRID,
        "Add connection to selected record",
        entity_capability=EntityCapability.IS_CONNECTIONS_ENABLED,
        selection_required=True,
    ),
    StandardCommand(
        "Mscrm.MergeSelectedRecord",
        "Merge",
        _W,
        _GRID,
        "Merge two records into one",
        selection_required=True,
        selection_count=2,
    ),
    StandardCommand(
        "Mscrm.Grid.EmailALink", "Email a Link", _R, _GRID, "Email a link to selected record", selection_required=True
    ),
    StandardCommand(
        "Mscrm.Grid.CopyShortcut", "Copy Link", _R, _GRID, "Copy record URL to clipboard", selection_required=True
    ),
    StandardCommand("Mscrm.CreateView", "Create View", _C, _GRID, "Create a new personal view", entity_override="savedquery"),
    StandardCommand("Mscrm.EditView", "Edit View", _W, _GRID, "Edit the current view", entity_override="savedquery"),
    StandardCommand("Mscrm.DeleteView", "Delete View", _D, _GRID, "Delete a personal view", entity_override="savedquery"),
    StandardCommand(
        "Mscrm.SaveAsView", "Save View As", _C, _GRID, "Save current filters as a new view", entity_override="userquery"
    ),
    StandardCommand("Mscrm.CreateTask", "Task", _C, _GRID, "Create a new task", entity_override="task"),
    StandardCommand("Mscrm.CreateEmail", "Email", _C, _GRID, "Create a new email", entity_override="email"),
    StandardCommand("Mscrm.CreatePhoneCall", "Phone Call", _C, _GRID, "Create a new phone call", entity_override="phonecall"),
    StandardCommand(
        "Mscrm.CreateAppointment", "Appointment", _C, _GRID, "Create a new appointment", entity_override="appointment"
    ),
    StandardCommand("Mscrm.CreateLetter", "Letter", _C, _GRID, "Create a new letter", entity_override="letter"),
    StandardCommand("Mscrm.CreateFax", "Fax", _C, _GRID, "Create a new fax", entity_override="fax"),
    StandardCommand(
        "Mscrm.AddToQueue",
        "Add to Queue",
        _W,
        _GRID,
        "Add record to a queue",
        entity_capability=EntityCapability.IS_VALID_FOR_QUEUE,
        selection_required=True,
    ),
    StandardCommand(
        "Mscrm.RouteToQueue",
        "Route",
        _W,
        _GRID,
        "Route record to a queue",
        entity_capability=EntityCapability.IS_VALID_FOR_QUEUE,
        selection_required=True,
    ),
    StandardCommand(
        "Mscrm.PickFromQueue",
        "Pick",
        _W,
        _GRID,
        "Pick item from queue to work on",
        entity_capability=EntityCapability.IS_VALID_FOR_QUEUE,
        selection_required=True,
    ),
    StandardCommand(
        "Mscrm.ReleaseToQueue",
        "Release",
        _W,
        _GRID,
        "Release item back to queue",
        entity_capability=EntityCapability.IS_VALID_FOR_QUEUE,
        selection_required=True,
    ),
    StandardCommand("Mscrm.RunReport", "Run Report", _R, _GRID, "Run a report"),
    StandardCommand(
        "Mscrm.MailMerge",
        "Mail Merge",
        _R,
        _GRID,
        "Perform mail merge",
        entity_capability=EntityCapability.IS_MAIL_MERGE_ENABLED,
    ),
    StandardCommand(
        "Mscrm.DetectDuplicates",
        "Detect Duplicates",
        _R,
        _GRID,
        "Detect duplicate records",
        entity_capability=EntityCapability.IS_DUPLICATE_DETECTION_ENABLED,
    ),
    # Related records subgrid
    StandardCommand("Mscrm.AddNewRecordFromSubGrid", "Add New", _C, _SUBGRID, "Create a new related record"),
    StandardCommand(
        "Mscrm.AddExistingRecordFromSubGrid", "Add Existing", PrivilegeKind.APPEND, _SUBGRID, "Associate an existing record"
    ),
    StandardCommand(
        "Mscrm.DeleteSelectedFromSubGrid",
        "Delete",
        _D,
        _SUBGRID,
        "Delete selected related record",
        selection_required=True,
    ),
    StandardCommand(
        "Mscrm.RemoveSelectedFromSubGrid",
        "Remove",
        PrivilegeKind.APPEND,
        _SUBGRID,
        "Remove record association (N:N)",
        selection_required=True,
    ),
    StandardCommand(
        "Mscrm.EditSelectedFromSubGrid", "Edit", _W, _SUBGRID, "Edit selected related record", selection_required=True
    ),
)


def standard_commands_for_context(context: str) -> list[StandardCommand]:
    """Return the catalog entries shown on ``context``, in catalog order."""
    return [command for command in STANDARD_COMMANDS if command.context == context]


def misc_privileges_for_context(context: str) -> list[str]:
    """Return the distinct misc privilege names standard commands on ``context`` need."""
    seen: dict[str, None] = {}
    for command in standard_commands_for_context(context):
        if command.misc_privilege:
            seen.setdefault(command.misc_privilege, None)
    return list(seen)
