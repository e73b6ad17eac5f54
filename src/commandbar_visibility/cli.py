from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import List, Optional

import typer

from commandbar_visibility.analyzer import CommandBarAnalyzer
from commandbar_visibility.classifier import classify_rule
from commandbar_visibility.config import AppConfig, CliOptions, load_config
from commandbar_visibility.errors import CurrentUserUnresolvedError, SnapshotError
from commandbar_visibility.evaluator import evaluate_rule
from commandbar_visibility.logging_utils import configure_logging
from commandbar_visibility.models import ComparisonReport, PrivilegeKind, PrivilegeSet
from commandbar_visibility.ribbon_cache import CachedRibbonPayloadSource, RibbonPayloadCache
from commandbar_visibility.snapshot import JsonSnapshotDataSource

app = typer.Typer(
    add_completion=False,
    help="Compare which command bar buttons two users can see.",
)

LOGGER = logging.getLogger(__name__)

_FORMATS = ("json", "text")


@app.command("compare")
def compare(
    snapshot: Optional[str] = typer.Option(None, "--snapshot", help="Snapshot JSON. Falls back to COMMANDBAR_SNAPSHOT."),
    entity: Optional[str] = typer.Option(None, "--entity", help="Entity logical name. Falls back to COMMANDBAR_ENTITY."),
    target_user: Optional[str] = typer.Option(
        None, "--target-user", help="User to compare against. Falls back to COMMANDBAR_TARGET_USER."
    ),
    current_user: Optional[str] = typer.Option(
        None, "--current-user", help="Comparison user. Falls back to COMMANDBAR_CURRENT_USER, then the snapshot."
    ),
    context: Optional[str] = typer.Option(
        None, "--context", help="Form, HomePageGrid or SubGrid. Falls back to COMMANDBAR_CONTEXT."
    ),
    output_format: str = typer.Option("json", "--format", help="json or text."),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Falls back to LOG_LEVEL."),
) -> None:
    """Compare command bar visibility between the current and a target user."""
    if output_format not in _FORMATS:
        raise typer.BadParameter(f"Allowed values: {', '.join(_FORMATS)}", param_hint="--format")
    config = _resolve_config(
        CliOptions(
            snapshot=snapshot,
            entity=entity,
            target_user=target_user,
            current_user=current_user,
            context=context,
            log_level=log_level,
        )
    )
    analyzer = CommandBarAnalyzer(_open_snapshot(config))
    try:
        report = asyncio.run(
            analyzer.compare_command_bar_visibility(
                config.target_user_id,
                config.entity,
                config.ui_context,
                config.current_user_id,
            )
        )
    except CurrentUserUnresolvedError as error:
        typer.echo(str(error), err=True)
        raise typer.Exit(code=2) from error

    if output_format == "text":
        typer.echo(_render_text(report))
    else:
        typer.echo(report.model_dump_json(by_alias=True, indent=2))


@app.command("security")
def security(
    snapshot: Optional[str] = typer.Option(None, "--snapshot", help="Snapshot JSON. Falls back to COMMANDBAR_SNAPSHOT."),
    target_user: Optional[str] = typer.Option(
        None, "--target-user", help="User to compare against. Falls back to COMMANDBAR_TARGET_USER."
    ),
    current_user: Optional[str] = typer.Option(
        None, "--current-user", help="Comparison user. Falls back to COMMANDBAR_CURRENT_USER, then the snapshot."
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Falls back to LOG_LEVEL."),
) -> None:
    """Show the role and team differences between two users."""
    config = _resolve_config(
        CliOptions(snapshot=snapshot, target_user=target_user, current_user=current_user, log_level=log_level),
        require_entity=False,
    )
    analyzer = CommandBarAnalyzer(_open_snapshot(config))
    try:
        comparison = asyncio.run(
            analyzer.compare_user_security_context(config.target_user_id, config.current_user_id)
        )
    except CurrentUserUnresolvedError as error:
        typer.echo(str(error), err=True)
        raise typer.Exit(code=2) from error
    typer.echo(comparison.model_dump_json(by_alias=True, indent=2))


@app.command("ribbon")
def ribbon(
    snapshot: Optional[str] = typer.Option(None, "--snapshot", help="Snapshot JSON. Falls back to COMMANDBAR_SNAPSHOT."),
    entity: Optional[str] = typer.Option(None, "--entity", help="Entity logical name. Falls back to COMMANDBAR_ENTITY."),
    context: Optional[str] = typer.Option(
        None, "--context", help="Form, HomePageGrid or SubGrid. Falls back to COMMANDBAR_CONTEXT."
    ),
    cache_ttl: Optional[str] = typer.Option(
        None, "--cache-ttl", help="Ribbon cache lifetime in seconds. Falls back to COMMANDBAR_RIBBON_CACHE_TTL."
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Falls back to LOG_LEVEL."),
) -> None:
    """List the commands defined by an entity's full ribbon payload."""
    config = _resolve_config(
        CliOptions(snapshot=snapshot, entity=entity, context=context, cache_ttl=cache_ttl, log_level=log_level),
        require_target_user=False,
    )
    source = _open_snapshot(config)
    ribbon_source = CachedRibbonPayloadSource(source, RibbonPayloadCache(config.ribbon_cache_ttl_seconds))
    analyzer = CommandBarAnalyzer(source, ribbon_source=ribbon_source)
    commands = asyncio.run(analyzer.analyze_entity_ribbon(config.entity, config.ui_context))
    typer.echo(json.dumps([command.model_dump(mode="json", by_alias=True) for command in commands], indent=2))


@app.command("classify")
def classify(
    rule_id: str = typer.Argument(..., help="Display or enable rule id."),
    privileges: Optional[List[str]] = typer.Option(
        None, "--privilege", "-p", help="Privilege the user holds (read, write, create, ...). Repeatable."
    ),
) -> None:
    """Classify one rule id and evaluate it against a privilege list."""
    granted: dict[str, dict[str, bool]] = {}
    for raw in privileges or []:
        try:
            kind = PrivilegeKind(raw.strip().lower())
        except ValueError as error:
            valid = ", ".join(item.value for item in PrivilegeKind)
            raise typer.BadParameter(f"Unknown privilege '{raw}'. Allowed values: {valid}", param_hint="--privilege") from error
        granted[kind.value] = {"hasPrivilege": True}

    definition = classify_rule(None, rule_id)
    verdict = evaluate_rule(rule_id, PrivilegeSet.model_validate(granted))
    payload = {
        "ruleId": rule_id,
        "definition": definition.model_dump(mode="json", by_alias=True, exclude_none=True),
        "verdict": verdict.model_dump(mode="json", by_alias=True),
    }
    typer.echo(json.dumps(payload, indent=2))


def _resolve_config(options: CliOptions, **requirements: bool) -> AppConfig:
    try:
        config = load_config(options, os.environ, **requirements)
    except ValueError as error:
        raise typer.BadParameter(str(error)) from error
    configure_logging(config.log_level)
    LOGGER.debug(
        "cli configuration resolved",
        extra={
            "event": "cli.config.resolved",
            "snapshot": str(config.snapshot_path),
            "entity": config.entity,
            "context": config.ui_context,
        },
    )
    return config


def _open_snapshot(config: AppConfig) -> JsonSnapshotDataSource:
    try:
        return JsonSnapshotDataSource.from_file(config.snapshot_path)
    except SnapshotError as error:
        raise typer.BadParameter(str(error), param_hint="--snapshot") from error


def _render_text(report: ComparisonReport) -> str:
    summary = report.summary
    lines = [
        f"{summary.entity} / {summary.context}: {summary.total_commands} commands, "
        f"{summary.differences} differences, {summary.potential_differences} potential, "
        f"{summary.hidden_commands} hidden",
    ]
    for item in report.commands:
        lines.append(f"{item.difference.value:<22} {item.command_id}  ({item.name})")
        for reason in item.current_user_blocked_by:
            lines.append(f"{'':<22}   current: {reason}")
        for reason in item.target_user_blocked_by:
            lines.append(f"{'':<22}   target:  {reason}")
    return "\n".join(lines)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
