from __future__ import annotations

from decimal import Decimal

import pytest

from stageflow.domain.approval import (
    DefaultApprovalGate,
    NoopApprovalGate,
    compile_approval_rules,
    evaluate,
    validate_approval,
)
from stageflow.domain.stages import (
    ApprovalFieldDefinition,
    ApprovalResponse,
    Comparison,
    FieldKind,
    StageDefinition,
)


def _number_field(comparison: Comparison | None, expected: float | None = 5) -> ApprovalFieldDefinition:
    return ApprovalFieldDefinition(
        id="hours",
        name="Hours logged",
        kind=FieldKind.NUMBER,
        comparison=comparison,
        expected_number=expected,
    )


@pytest.mark.parametrize(
    "comparison, value, ok",
    [
        (Comparison.EQUAL_TO, 5, True),
        (Comparison.EQUAL_TO, 4, False),
        (Comparison.EQUAL_TO, 5.0, True),
        (Comparison.LESS_THAN, 4, True),
        (Comparison.LESS_THAN, 5, False),
        (Comparison.LESS_THAN, 6, False),
        (Comparison.GREATER_THAN, 6, True),
        (Comparison.GREATER_THAN, 5, False),
        (Comparison.GREATER_THAN, 4, False),
    ],
)
def test_number_comparisons(comparison: Comparison, value: float, ok: bool) -> None:
    message = evaluate(_number_field(comparison), ApprovalResponse(field_id="hours", value=value))
    assert (message is None) is ok


def test_number_failure_message_names_comparison_and_threshold() -> None:
    message = evaluate(
        _number_field(Comparison.EQUAL_TO),
        ApprovalResponse(field_id="hours", value=4),
    )
    assert message == "Value must be equal to 5"

    message = evaluate(
        _number_field(Comparison.GREATER_THAN, expected=2.5),
        ApprovalResponse(field_id="hours", value=1),
    )
    assert message == "Value must be greater than 2.5"


def test_number_without_comparison_is_presence_check() -> None:
    field = _number_field(None, expected=None)
    assert field.is_presence_check

    assert evaluate(field, ApprovalResponse(field_id="hours", value=-100)) is None
    assert evaluate(field, None) == "This field is required"


@pytest.mark.parametrize(
    "comparison, value, ok",
    [
        (Comparison.EQUAL_TO, Decimal("5"), True),
        (Comparison.EQUAL_TO, Decimal("5.01"), False),
        (Comparison.LESS_THAN, Decimal("4.5"), True),
        (Comparison.GREATER_THAN, Decimal("5.5"), True),
    ],
)
def test_number_accepts_decimal_values(comparison: Comparison, value: Decimal, ok: bool) -> None:
    message = evaluate(_number_field(comparison), ApprovalResponse(field_id="hours", value=value))
    assert (message is None) is ok


@pytest.mark.parametrize("value", ["5", True, [5], Decimal("NaN")])
def test_number_rejects_non_numeric_values(value) -> None:
    message = evaluate(_number_field(Comparison.EQUAL_TO), ApprovalResponse(field_id="hours", value=value))
    assert message == "Please enter a valid number"


def test_boolean_must_match_expected_value() -> None:
    field = ApprovalFieldDefinition(
        id="signed_off",
        name="Signed off",
        kind=FieldKind.BOOLEAN,
        expected_boolean=True,
    )

    assert evaluate(field, ApprovalResponse(field_id="signed_off", value=True)) is None
    assert (
        evaluate(field, ApprovalResponse(field_id="signed_off", value=False))
        == "This field must be set to Yes"
    )
    assert evaluate(field, ApprovalResponse(field_id="signed_off", value="yes")) == "Please choose Yes or No"


def test_boolean_expecting_no() -> None:
    field = ApprovalFieldDefinition(
        id="disputed",
        name="Disputed",
        kind=FieldKind.BOOLEAN,
        expected_boolean=False,
    )
    assert evaluate(field, ApprovalResponse(field_id="disputed", value=True)) == "This field must be set to No"


def test_long_text_requires_non_blank_text() -> None:
    field = ApprovalFieldDefinition(id="summary", name="Summary", kind=FieldKind.LONG_TEXT)

    assert evaluate(field, ApprovalResponse(field_id="summary", value="All reconciled")) is None
    assert evaluate(field, ApprovalResponse(field_id="summary", value="   ")) == "This field is required"
    assert evaluate(field, ApprovalResponse(field_id="summary", value=12)) == "Please enter text"


def test_multi_select_checks_selection_and_options() -> None:
    field = ApprovalFieldDefinition(
        id="checks",
        name="Checks done",
        kind=FieldKind.MULTI_SELECT,
        options=("bank", "payroll", "vat"),
    )

    assert evaluate(field, ApprovalResponse(field_id="checks", value=["bank", "vat"])) is None
    assert evaluate(field, ApprovalResponse(field_id="checks", value=[])) == "Please select at least one option"
    assert (
        evaluate(field, ApprovalResponse(field_id="checks", value=["bank", "zzz", "aaa"]))
        == "Invalid options selected: aaa, zzz"
    )
    assert (
        evaluate(field, ApprovalResponse(field_id="checks", value="bank"))
        == "Please select from the available options"
    )


@pytest.mark.parametrize(
    "field",
    [
        ApprovalFieldDefinition(id="f", name="B", kind=FieldKind.BOOLEAN, expected_boolean=True, is_required=False),
        ApprovalFieldDefinition(id="f", name="N", kind=FieldKind.NUMBER, is_required=False),
        ApprovalFieldDefinition(id="f", name="T", kind=FieldKind.LONG_TEXT, is_required=False),
        ApprovalFieldDefinition(id="f", name="M", kind=FieldKind.MULTI_SELECT, options=("a",), is_required=False),
    ],
)
def test_optional_fields_pass_when_unanswered(field: ApprovalFieldDefinition) -> None:
    assert evaluate(field, None) is None


def test_one_error_per_failing_field_in_field_order() -> None:
    definitions = [
        ApprovalFieldDefinition(id="text", name="Text", kind=FieldKind.LONG_TEXT, order=2),
        ApprovalFieldDefinition(id="flag", name="Flag", kind=FieldKind.BOOLEAN, expected_boolean=True, order=1),
        ApprovalFieldDefinition(
            id="count", name="Count", kind=FieldKind.NUMBER,
            comparison=Comparison.LESS_THAN, expected_number=3, order=3,
        ),
    ]

    validation = validate_approval(
        definitions,
        [
            ApprovalResponse(field_id="flag", value=False),
            ApprovalResponse(field_id="count", value=1),
            ApprovalResponse(field_id="unknown", value="ignored"),
        ],
    )

    assert not validation.ok
    assert [e.field_id for e in validation.field_errors] == ["flag", "text"]


def test_last_response_for_a_field_wins() -> None:
    rules = compile_approval_rules(
        [ApprovalFieldDefinition(id="flag", name="Flag", kind=FieldKind.BOOLEAN, expected_boolean=True)]
    )

    validation = rules.validate(
        [
            ApprovalResponse(field_id="flag", value=False),
            ApprovalResponse(field_id="flag", value=True),
        ]
    )

    assert validation.ok
    assert rules.field_ids == ["flag"]


def test_default_gate_passes_stage_without_fields() -> None:
    result = DefaultApprovalGate().evaluate(
        trace_id="t",
        stage=StageDefinition(id="s", name="Review"),
        responses=(),
    )
    assert result.proceed is True
    assert result.awaiting_approval is False


def test_default_gate_reports_field_errors() -> None:
    stage = StageDefinition(
        id="s",
        name="Review",
        approval_fields=(
            ApprovalFieldDefinition(id="flag", name="Flag", kind=FieldKind.BOOLEAN, expected_boolean=True),
        ),
    )

    result = DefaultApprovalGate().evaluate(
        trace_id="t",
        stage=stage,
        responses=(ApprovalResponse(field_id="flag", value=False),),
    )

    assert result.proceed is False
    assert result.awaiting_approval is True
    assert result.field_errors[0].message == "This field must be set to Yes"


def test_noop_gate_always_proceeds() -> None:
    stage = StageDefinition(
        id="s",
        name="Review",
        approval_fields=(ApprovalFieldDefinition(id="flag", name="Flag", kind=FieldKind.BOOLEAN),),
    )
    assert NoopApprovalGate().evaluate(trace_id="t", stage=stage, responses=()).proceed is True
