"""Best-effort evaluation of solution-authored custom rules.

Custom JavaScript rules are opaque to the analyzer, so the deterministic
evaluator always reports them as non-evaluable. A resolver offers an explicit,
separate way to run a rule function when one is available locally; its result
only ever describes the user the function runs for.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

LOGGER = logging.getLogger(__name__)


class CustomRuleEvaluation(BaseModel):
    """Outcome of an attempt to run a custom rule function."""

    evaluated: bool = False
    result: bool | None = None
    error: str | None = None
    reason: str = "Not evaluated"


class CustomRuleResolver(ABC):
    """Looks up and runs a custom rule function by library and name."""

    @abstractmethod
    def try_evaluate(
        self,
        library: str | None,
        function_name: str | None,
        primary_control: Any = None,
    ) -> CustomRuleEvaluation:
        raise NotImplementedError


class UnavailableCustomRuleResolver(CustomRuleResolver):
    """Default resolver: custom rule logic is never available."""

    def try_evaluate(
        self,
        library: str | None,
        function_name: str | None,
        primary_control: Any = None,
    ) -> CustomRuleEvaluation:
        return CustomRuleEvaluation(reason="Custom rule evaluation is not available")


class NamespaceCustomRuleResolver(CustomRuleResolver):
    """Resolves ``library.function_name`` through a registered namespace.

    Each dotted segment is looked up as a mapping key or an attribute, the
    resolved callable is invoked with the primary control, and its return
    value is coerced to ``bool``. Lookup failures and exceptions raised by the
    rule are reported in the result.
    """

    def __init__(self, namespace: Any) -> None:
        self._namespace = namespace

    def try_evaluate(
        self,
        library: str | None,
        function_name: str | None,
        primary_control: Any = None,
    ) -> CustomRuleEvaluation:
        if not function_name:
            return CustomRuleEvaluation(reason="No function name provided")

        full_path = f"{library}.{function_name}" if library else function_name
        target = self._namespace
        for part in full_path.split("."):
            if isinstance(target, Mapping) and part in target:
                target = target[part]
            elif not isinstance(target, Mapping) and hasattr(target, part):
                target = getattr(target, part)
            else:
                return CustomRuleEvaluation(reason=f"Function {full_path} not found in namespace")

        if not callable(target):
            return CustomRuleEvaluation(reason=f"{full_path} is not a function")

        try:
            outcome = bool(target(primary_control))
        except Exception as error:  # noqa: BLE001
            LOGGER.warning(
                "custom rule raised",
                extra={"event": "custom_rule.failed", "function": full_path, "error": str(error)},
            )
            return CustomRuleEvaluation(error=str(error), reason=f"Error evaluating: {error}")

        return CustomRuleEvaluation(
            evaluated=True,
            result=outcome,
            reason="Rule passed" if outcome else "Rule returned false",
        )
