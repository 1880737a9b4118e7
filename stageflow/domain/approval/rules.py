"""Approval rule compiler.

Turns a stage's approval field definitions into pass/fail predicates.

Core principles:
- One ``evaluate(definition, response)`` function dispatches on the field kind
- A field produces at most one error message
- Pure and synchronous: no I/O, no clock, no randomness
"""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass
from decimal import Decimal
from numbers import Real
from typing import Any, Callable, Iterable, Optional, Sequence

from stageflow.domain.stages import (
    ApprovalFieldDefinition,
    ApprovalResponse,
    Comparison,
    FieldKind,
)
from .entities import ApprovalValidation, FieldError

Predicate = Callable[[Optional[ApprovalResponse]], Optional[str]]

_COMPARISON_WORDS = {
    Comparison.EQUAL_TO: "equal to",
    Comparison.LESS_THAN: "less than",
    Comparison.GREATER_THAN: "greater than",
}

_REQUIRED = "This field is required"


def evaluate(
    definition: ApprovalFieldDefinition,
    response: ApprovalResponse | None,
) -> str | None:
    """Evaluate one response against its field definition.

    Returns:
        None when satisfied (or nothing to check), otherwise the failure message.
    """
    value = response.value if response is not None else None

    if definition.kind == FieldKind.BOOLEAN:
        return _evaluate_boolean(definition, value)
    if definition.kind == FieldKind.NUMBER:
        return _evaluate_number(definition, value)
    if definition.kind == FieldKind.LONG_TEXT:
        return _evaluate_long_text(definition, value)
    if definition.kind == FieldKind.MULTI_SELECT:
        return _evaluate_multi_select(definition, value)
    raise ValueError(f"Unsupported approval field kind: {definition.kind}")


def _evaluate_boolean(definition: ApprovalFieldDefinition, value: Any) -> str | None:
    if value is None:
        return _REQUIRED if definition.is_required else None
    if not isinstance(value, bool):
        return "Please choose Yes or No"
    if definition.expected_boolean is not None and value is not definition.expected_boolean:
        return f"This field must be set to {'Yes' if definition.expected_boolean else 'No'}"
    return None


def _evaluate_number(definition: ApprovalFieldDefinition, value: Any) -> str | None:
    if value is None:
        return _REQUIRED if definition.is_required else None
    if isinstance(value, bool) or not isinstance(value, (Real, Decimal)):
        return "Please enter a valid number"
    if isinstance(value, Decimal) and not value.is_finite():
        return "Please enter a valid number"
    if definition.is_presence_check:
        return None

    expected = definition.expected_number
    if definition.comparison == Comparison.EQUAL_TO:
        ok = value == expected
    elif definition.comparison == Comparison.LESS_THAN:
        ok = value < expected
    else:
        ok = value > expected

    if ok:
        return None
    return f"Value must be {_COMPARISON_WORDS[definition.comparison]} {_format_number(expected)}"


def _evaluate_long_text(definition: ApprovalFieldDefinition, value: Any) -> str | None:
    if value is not None and not isinstance(value, str):
        return "Please enter text"
    if not (value or "").strip():
        return _REQUIRED if definition.is_required else None
    return None


def _evaluate_multi_select(definition: ApprovalFieldDefinition, value: Any) -> str | None:
    if value is None:
        chosen: list[str] = []
    elif isinstance(value, (str, bytes)) or not isinstance(value, Collection):
        return "Please select from the available options"
    else:
        chosen = list(value)

    if not chosen:
        return "Please select at least one option" if definition.is_required else None

    if definition.options:
        invalid = [str(v) for v in chosen if v not in definition.options]
        if invalid:
            return f"Invalid options selected: {', '.join(sorted(invalid))}"
    return None


def _format_number(n: float | None) -> str:
    if n is not None and float(n).is_integer():
        return str(int(n))
    return str(n)


@dataclass(frozen=True)
class CompiledRule:
    field_id: str
    predicate: Predicate


class ApprovalRuleSet:
    """A stage's approval fields compiled into ordered predicates."""

    def __init__(self, rules: Sequence[CompiledRule]) -> None:
        self._rules = tuple(rules)

    @property
    def field_ids(self) -> list[str]:
        return [r.field_id for r in self._rules]

    def validate(self, responses: Iterable[ApprovalResponse]) -> ApprovalValidation:
        # Unknown field ids are ignored; the last response for a field wins.
        by_field = {r.field_id: r for r in responses}

        errors = []
        for rule in self._rules:
            message = rule.predicate(by_field.get(rule.field_id))
            if message is not None:
                errors.append(FieldError(field_id=rule.field_id, message=message))

        if errors:
            return ApprovalValidation(field_errors=tuple(errors))
        return ApprovalValidation.passed()


def compile_approval_rules(
    definitions: Iterable[ApprovalFieldDefinition],
) -> ApprovalRuleSet:
    ordered = sorted(definitions, key=lambda d: d.order)
    return ApprovalRuleSet(
        [
            CompiledRule(field_id=d.id, predicate=lambda resp, d=d: evaluate(d, resp))
            for d in ordered
        ]
    )


def validate_approval(
    definitions: Iterable[ApprovalFieldDefinition],
    responses: Iterable[ApprovalResponse],
) -> ApprovalValidation:
    return compile_approval_rules(definitions).validate(responses)
