from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from commandbar_visibility.models import UiContext
from commandbar_visibility.ribbon_cache import DEFAULT_TTL_SECONDS

SUPPORTED_CONTEXTS = {context.value for context in UiContext}
SUPPORTED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(slots=True)
class CliOptions:
    """Raw command-line values; ``None`` means the option was not given."""

    snapshot: str | None = None
    entity: str | None = None
    target_user: str | None = None
    current_user: str | None = None
    context: str | None = None
    cache_ttl: str | None = None
    log_level: str | None = None


@dataclass(slots=True)
class AppConfig:
    snapshot_path: Path
    entity: str | None
    target_user_id: str | None
    current_user_id: str | None
    ui_context: str
    ribbon_cache_ttl_seconds: float
    log_level: str


def load_config(
    options: CliOptions,
    env: Mapping[str, str],
    *,
    require_entity: bool = True,
    require_target_user: bool = True,
) -> AppConfig:
    """Merge command-line options with environment fallbacks and validate them.

    Raises:
        ValueError: A required value is missing or a value is malformed.
    """
    snapshot_raw = _normalize_empty(options.snapshot) or _normalize_empty(env.get("COMMANDBAR_SNAPSHOT"))
    entity = _normalize_empty(options.entity) or _normalize_empty(env.get("COMMANDBAR_ENTITY"))
    target_user_id = _normalize_empty(options.target_user) or _normalize_empty(env.get("COMMANDBAR_TARGET_USER"))
    current_user_id = _normalize_empty(options.current_user) or _normalize_empty(env.get("COMMANDBAR_CURRENT_USER"))
    ui_context = (
        _normalize_empty(options.context) or _normalize_empty(env.get("COMMANDBAR_CONTEXT")) or UiContext.HOME_PAGE_GRID.value
    )
    raw_ttl = _normalize_empty(options.cache_ttl) or _normalize_empty(env.get("COMMANDBAR_RIBBON_CACHE_TTL"))
    log_level = (_normalize_empty(options.log_level) or _normalize_empty(env.get("LOG_LEVEL")) or "INFO").upper()

    if not snapshot_raw:
        raise ValueError("Missing snapshot file. Use --snapshot or set COMMANDBAR_SNAPSHOT")

    if require_entity and not entity:
        raise ValueError("Missing entity. Use --entity or set COMMANDBAR_ENTITY")

    if require_target_user and not target_user_id:
        raise ValueError("Missing target user. Use --target-user or set COMMANDBAR_TARGET_USER")

    if ui_context not in SUPPORTED_CONTEXTS:
        valid = ", ".join(sorted(SUPPORTED_CONTEXTS))
        raise ValueError(f"Unsupported context '{ui_context}'. Allowed values: {valid}")

    if log_level not in SUPPORTED_LOG_LEVELS:
        valid = ", ".join(sorted(SUPPORTED_LOG_LEVELS))
        raise ValueError(f"Unsupported LOG_LEVEL '{log_level}'. Allowed values: {valid}")

    ribbon_cache_ttl_seconds = float(DEFAULT_TTL_SECONDS)
    if raw_ttl is not None:
        try:
            ribbon_cache_ttl_seconds = float(raw_ttl)
        except ValueError as error:
            raise ValueError("COMMANDBAR_RIBBON_CACHE_TTL/--cache-ttl must be a number") from error
        if ribbon_cache_ttl_seconds <= 0:
            raise ValueError("COMMANDBAR_RIBBON_CACHE_TTL/--cache-ttl must be greater than 0")

    return AppConfig(
        snapshot_path=Path(snapshot_raw).expanduser(),
        entity=entity,
        target_user_id=target_user_id,
        current_user_id=current_user_id,
        ui_context=ui_context,
        ribbon_cache_ttl_seconds=ribbon_cache_ttl_seconds,
        log_level=log_level,
    )


def _normalize_empty(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None
