"""Tests for commandbar_visibility.cli: the typer command surface."""

from __future__ import annotations

import base64
import gzip
import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from commandbar_visibility import cli

RIBBON = '<Button Id="x" Command="Mscrm.DeleteRecord" LabelText="Delete Record"/><CommandDefinition Id="Mscrm.DeleteRecord"/>'


def _snapshot(current_user_id: str | None = "u1") -> dict:
    return {
        "currentUserId": current_user_id,
        "entities": {
            "account": {
                "ribbonPayloads": {
                    "HomepageGrid": base64.b64encode(gzip.compress(RIBBON.encode("utf-8"))).decode("ascii")
                }
            }
        },
        "users": {
            "u1": {
                "roles": [{"id": "r1", "name": "Salesperson"}],
                "privileges": {"account": {"read": True, "create": True}},
                "miscPrivileges": ["prvExportToExcel", "prvImportExportData"],
            },
            "u2": {
                "roles": [{"id": "r2", "name": "Sales Manager"}],
                "privileges": {"account": {"read": True}},
            },
        },
    }


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)
    for name in ("COMMANDBAR_SNAPSHOT", "COMMANDBAR_ENTITY", "COMMANDBAR_TARGET_USER", "COMMANDBAR_CURRENT_USER"):
        monkeypatch.delenv(name, raising=False)


def _write(tmp_path: Path, document: dict) -> str:
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps(document), encoding="utf-8")
    return str(path)


class TestCompare:
    def test_json_report(self, tmp_path: Path) -> None:
        snapshot = _write(tmp_path, _snapshot())
        result = CliRunner().invoke(
            cli.app, ["compare", "--snapshot", snapshot, "--entity", "account", "--target-user", "u2"]
        )
        assert result.exit_code == 0, result.output
        report = json.loads(result.stdout)
        assert report["summary"]["context"] == "HomePageGrid"
        assert report["summary"]["securityComparison"]["rolesMatch"] is False
        first = report["commands"][0]
        assert first["difference"] == "only-current"
        assert "isOOTB" in first

    def test_text_report(self, tmp_path: Path) -> None:
        snapshot = _write(tmp_path, _snapshot())
        result = CliRunner().invoke(
            cli.app,
            ["compare", "--snapshot", snapshot, "--entity", "account", "--target-user", "u2", "--format", "text"],
        )
        assert result.exit_code == 0, result.output
        assert result.stdout.startswith("account / HomePageGrid:")
        assert "Mscrm.NewRecordFromGrid" in result.stdout
        assert "target:  Missing Create privilege" in result.stdout

    def test_environment_configuration(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("COMMANDBAR_SNAPSHOT", _write(tmp_path, _snapshot()))
        monkeypatch.setenv("COMMANDBAR_ENTITY", "account")
        monkeypatch.setenv("COMMANDBAR_TARGET_USER", "u2")
        result = CliRunner().invoke(cli.app, ["compare", "--context", "Form"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["summary"]["context"] == "Form"

    def test_unresolved_current_user(self, tmp_path: Path) -> None:
        snapshot = _write(tmp_path, _snapshot(current_user_id=None))
        result = CliRunner().invoke(
            cli.app, ["compare", "--snapshot", snapshot, "--entity", "account", "--target-user", "u2"]
        )
        assert result.exit_code == 2
        assert "Could not determine the current user" in result.output

    def test_missing_entity_is_a_usage_error(self, tmp_path: Path) -> None:
        snapshot = _write(tmp_path, _snapshot())
        result = CliRunner().invoke(cli.app, ["compare", "--snapshot", snapshot, "--target-user", "u2"])
        assert result.exit_code == 2
        assert "COMMANDBAR_ENTITY" in result.output

    def test_unreadable_snapshot(self, tmp_path: Path) -> None:
        result = CliRunner().invoke(
            cli.app,
            ["compare", "--snapshot", str(tmp_path / "missing.json"), "--entity", "account", "--target-user", "u2"],
        )
        assert result.exit_code == 2

    def test_unknown_format(self, tmp_path: Path) -> None:
        snapshot = _write(tmp_path, _snapshot())
        result = CliRunner().invoke(
            cli.app,
            ["compare", "--snapshot", snapshot, "--entity", "account", "--target-user", "u2", "--format", "xml"],
        )
        assert result.exit_code == 2


class TestSecurity:
    def test_role_diff(self, tmp_path: Path) -> None:
        snapshot = _write(tmp_path, _snapshot())
        result = CliRunner().invoke(cli.app, ["security", "--snapshot", snapshot, "--target-user", "u2"])
        assert result.exit_code == 0, result.output
        comparison = json.loads(result.stdout)
        assert comparison["securityContextMatch"] is False
        assert comparison["roles"]["onlyCurrent"] == [{"id": "r1", "name": "Salesperson"}]
        assert comparison["roles"]["onlyTarget"] == [{"id": "r2", "name": "Sales Manager"}]


class TestRibbon:
    def test_lists_parsed_commands(self, tmp_path: Path) -> None:
        snapshot = _write(tmp_path, _snapshot())
        result = CliRunner().invoke(cli.app, ["ribbon", "--snapshot", snapshot, "--entity", "account"])
        assert result.exit_code == 0, result.output
        commands = json.loads(result.stdout)
        assert [command["id"] for command in commands] == ["Mscrm.DeleteRecord"]
        assert commands[0]["name"] == "Delete Record"
        assert commands[0]["isOOTB"] is True


class TestClassify:
    def test_privilege_rule_with_privilege(self) -> None:
        result = CliRunner().invoke(cli.app, ["classify", "Mscrm.CanWritePrimary", "--privilege", "Write"])
        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert payload["definition"]["type"] == "EntityPrivilegeRule"
        assert payload["verdict"] == {"passes": True, "canEvaluate": True, "reason": "User has Write privilege"}

    def test_privilege_rule_without_privileges(self) -> None:
        result = CliRunner().invoke(cli.app, ["classify", "Mscrm.CanWritePrimary"])
        assert json.loads(result.stdout)["verdict"]["passes"] is False

    def test_custom_rule(self) -> None:
        result = CliRunner().invoke(cli.app, ["classify", "contoso.account.IsApprover"])
        payload = json.loads(result.stdout)
        assert payload["definition"]["isJavascript"] is True
        assert payload["verdict"]["canEvaluate"] is False

    def test_unknown_privilege(self) -> None:
        result = CliRunner().invoke(cli.app, ["classify", "Mscrm.CanWritePrimary", "-p", "admin"])
        assert result.exit_code == 2
