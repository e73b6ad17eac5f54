"""Exceptions raised by command bar visibility analysis."""

from __future__ import annotations


class CommandBarAnalysisError(Exception):
    """Base class for errors that stop an analysis from starting."""


class CurrentUserUnresolvedError(CommandBarAnalysisError):
    """Neither an explicit current user nor a session identity is available."""

    def __init__(self) -> None:
        super().__init__(
            "Could not determine the current user: pass a current user id or run inside a signed-in session"
        )


class SnapshotError(CommandBarAnalysisError):
    """A data snapshot file cannot be read or does not match the expected shape."""
