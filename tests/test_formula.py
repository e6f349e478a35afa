from __future__ import annotations

import pytest

from bizflow.core.errors import FormulaEvaluationError
from bizflow.rules.formula import Formula, evaluate_formula


@pytest.mark.parametrize(
    ("source", "expected"),
    [
        ("2 + 3 * 4", 14.0),
        ("(2 + 3) * 4", 20.0),
        ("10 - 4 - 3", 3.0),
        ("24 / 4 / 2", 3.0),
        ("-3 + 5", 2.0),
        ("-(2 + 3) * 2", -10.0),
        (".5 * 4", 2.0),
    ],
)
def test_operator_precedence(source: str, expected: float) -> None:
    assert evaluate_formula(source, {}) == pytest.approx(expected)


def test_variables_resolve_from_answers() -> None:
    formula = Formula("(capital_needed / equity_dilution) * 100")
    assert formula.variables == frozenset({"capital_needed", "equity_dilution"})
    assert formula.evaluate({"capital_needed": 5_000_000, "equity_dilution": 10}) == pytest.approx(50_000_000)


@pytest.mark.parametrize(
    "context",
    [
        {"ltv": 3000},
        {"ltv": 3000, "target_cac": "1000"},
        {"ltv": 3000, "target_cac": None},
        {"ltv": 3000, "target_cac": True},
    ],
)
def test_missing_or_non_numeric_variables_fail(context: dict) -> None:
    with pytest.raises(FormulaEvaluationError, match="target_cac"):
        evaluate_formula("ltv / target_cac", context)


def test_division_by_zero_fails() -> None:
    with pytest.raises(FormulaEvaluationError, match="Division by zero"):
        evaluate_formula("ltv / target_cac", {"ltv": 10, "target_cac": 0})


@pytest.mark.parametrize("source", ["", "2 +", "(1 + 2", "1 + 2)", "a ** b", "import os", "1; 2"])
def test_malformed_formulas_are_rejected_at_parse_time(source: str) -> None:
    with pytest.raises(FormulaEvaluationError):
        Formula(source)


def test_integral_results_come_back_as_int() -> None:
    ratio = evaluate_formula("ltv / target_cac", {"ltv": 150000, "target_cac": 50000})
    assert ratio == 3
    assert isinstance(ratio, int)

    fraction = evaluate_formula("ltv / target_cac", {"ltv": 3000, "target_cac": 800})
    assert fraction == pytest.approx(3.75)
    assert isinstance(fraction, float)
