"""Tests for the recursive-descent formula evaluator."""

from __future__ import annotations

import math

import pytest

from sheetcalc.cells import CellSnapshot
from sheetcalc.formulas import (
    MAX_NESTING_DEPTH,
    ErrorKind,
    Evaluation,
    FormulaEvaluator,
    evaluate_formula,
    is_number,
)


class FakeStore:
    """Minimal cell store: a dict of label -> snapshot."""

    def __init__(self, cells: dict[str, CellSnapshot] | None = None) -> None:
        self.cells = cells or {}
        self.lookups: list[str] = []

    def get_cell_by_label(self, label: str) -> CellSnapshot:
        self.lookups.append(label)
        return self.cells.get(label, CellSnapshot())


def _eval(tokens: list[str], store: FakeStore | None = None, **kwargs) -> Evaluation:
    return evaluate_formula(tokens, store or FakeStore(), **kwargs)


# ────────────────────────────────────────────────────────────────
# Arithmetic
# ────────────────────────────────────────────────────────────────


class TestArithmetic:
    def test_single_number(self) -> None:
        assert _eval(["42"]) == Evaluation(42.0, "")

    def test_addition(self) -> None:
        out = _eval(["2", "+", "3"])
        assert out.result == 5
        assert out.error == ""
        assert out.ok

    def test_precedence(self) -> None:
        """Multiplication binds tighter than addition: 2+3*4 = 14."""
        assert _eval(["2", "+", "3", "*", "4"]).result == 14

    def test_parentheses(self) -> None:
        assert _eval(["(", "2", "+", "3", ")", "*", "4"]).result == 20

    def test_subtraction_is_left_associative(self) -> None:
        assert _eval(["1", "-", "2", "-", "3"]).result == -4

    def test_division(self) -> None:
        assert _eval(["10", "/", "4"]).result == 2.5

    def test_division_is_left_associative(self) -> None:
        assert _eval(["12", "/", "3", "/", "2"]).result == 2

    def test_nested_groups(self) -> None:
        tokens = ["(", "(", "1", "+", "2", ")", "*", "(", "3", "+", "4", ")", ")"]
        assert _eval(tokens).result == 21

    def test_decimal_and_exponent_literals(self) -> None:
        assert _eval(["1.5", "*", ".5"]).result == pytest.approx(0.75)
        assert _eval(["2e3", "+", "1"]).result == 2001

    def test_signed_literal(self) -> None:
        assert _eval(["2", "*", "-3"]).result == -6


# ────────────────────────────────────────────────────────────────
# Sign toggle
# ────────────────────────────────────────────────────────────────


class TestSignToggle:
    def test_toggle_literal(self) -> None:
        out = _eval(["5", "+/-"])
        assert out.result == -5
        assert out.ok

    def test_double_toggle(self) -> None:
        assert _eval(["5", "+/-", "+/-"]).result == 5

    def test_toggle_applies_to_running_term(self) -> None:
        assert _eval(["2", "*", "3", "+/-"]).result == -6

    def test_toggle_does_not_cross_addition(self) -> None:
        """1 + 2 +/- is 1 + (-2)."""
        assert _eval(["1", "+", "2", "+/-"]).result == -1

    def test_toggle_group(self) -> None:
        assert _eval(["(", "1", "+", "2", ")", "+/-"]).result == -3

    def test_toggle_zero_stays_positive(self) -> None:
        out = _eval(["0", "+/-"])
        assert out.result == 0
        assert math.copysign(1.0, out.result) == 1.0


# ────────────────────────────────────────────────────────────────
# Errors
# ────────────────────────────────────────────────────────────────


class TestErrors:
    def test_empty_formula(self) -> None:
        out = _eval([])
        assert out.error == ErrorKind.EMPTY_FORMULA
        assert out.error == "#EMPTY!"
        assert out.result == 0

    def test_divide_by_zero(self) -> None:
        out = _eval(["8", "/", "0"])
        assert out.error == ErrorKind.DIVIDE_BY_ZERO
        assert out.result == math.inf

    def test_multiply_by_zero_reports_divide_by_zero(self) -> None:
        out = _eval(["6", "*", "0"])
        assert out.error == ErrorKind.DIVIDE_BY_ZERO
        assert out.result == math.inf

    def test_zero_divisor_from_group(self) -> None:
        out = _eval(["1", "/", "(", "2", "-", "2", ")"])
        assert out.error == "#DIV/0!"
        assert out.result == math.inf

    def test_zero_dividend_is_fine(self) -> None:
        assert _eval(["0", "/", "5"]) == Evaluation(0.0, "")

    def test_missing_parenthesis_keeps_value(self) -> None:
        out = _eval(["(", "1", "+", "2"])
        assert out.error == ErrorKind.MISSING_PARENTHESES
        assert out.result == 3

    def test_wrong_token_instead_of_close(self) -> None:
        out = _eval(["(", "4", "(", "1", ")"])
        assert out.error == "#PAREN!"
        assert out.result == 4

    def test_unrecognized_token(self) -> None:
        out = _eval(["foo"])
        assert out.error == ErrorKind.INVALID_FORMULA
        assert out.result == 0

    def test_dangling_operator(self) -> None:
        out = _eval(["2", "+"])
        assert out.error == "#ERR!"
        assert out.result == 0

    def test_lone_open_paren(self) -> None:
        assert _eval(["("]).error == "#ERR!"

    def test_trailing_tokens_keep_last_good_value(self) -> None:
        out = _eval(["2", "3"])
        assert out.error == ErrorKind.INVALID_FORMULA
        assert out.result == 2

    def test_stray_close_paren(self) -> None:
        out = _eval(["1", "+", "2", ")"])
        assert out.error == "#ERR!"
        assert out.result == 3

    @pytest.mark.parametrize("token", ["nan", "inf", "Infinity", "1_000", "0x10", ""])
    def test_non_decimal_spellings_are_invalid(self, token: str) -> None:
        assert _eval([token]).error == "#ERR!"

    def test_overflow_to_nan_is_reported(self) -> None:
        tokens = ["1e308", "*", "10", "-", "1e308", "*", "10"]
        out = _eval(tokens)
        assert out.error == "#ERR!"
        assert not math.isnan(out.result)

    def test_nan_then_trailing_token_reports_zero(self) -> None:
        tokens = ["1e308", "*", "10", "-", "1e308", "*", "10", "5"]
        out = _eval(tokens)
        assert out.error == ErrorKind.INVALID_FORMULA
        assert out.result == 0

    def test_nan_inside_unclosed_group_reports_zero(self) -> None:
        tokens = ["(", "1e308", "*", "10", "-", "1e308", "*", "10", "5"]
        out = _eval(tokens)
        assert out.error == ErrorKind.MISSING_PARENTHESES
        assert out.result == 0


class TestFirstErrorWins:
    def test_divide_then_garbage(self) -> None:
        out = _eval(["8", "/", "0", "+", "(", "1"])
        assert out.error == "#DIV/0!"
        assert out.result == math.inf

    def test_divide_inside_unclosed_group(self) -> None:
        out = _eval(["(", "8", "/", "0"])
        assert out.error == "#DIV/0!"
        assert out.result == math.inf

    def test_bad_reference_then_multiply(self) -> None:
        """A1 is empty; the following '* 3' must not turn it into #DIV/0!."""
        out = _eval(["A1", "*", "3"])
        assert out.error == ErrorKind.INVALID_CELL
        assert out.result == 0

    def test_unclosed_group_then_trailing(self) -> None:
        out = _eval(["(", "1", "+", "2", "foo"])
        assert out.error == "#PAREN!"
        assert out.result == 3

    def test_error_stops_further_lookups(self) -> None:
        store = FakeStore()
        _eval(["foo", "+", "A1"], store)
        assert store.lookups == []


# ────────────────────────────────────────────────────────────────
# Cell references
# ────────────────────────────────────────────────────────────────


class TestCellReferences:
    def test_reference_value(self) -> None:
        store = FakeStore({"A1": CellSnapshot(("7",), 7.0, "")})
        assert _eval(["A1", "*", "2"], store).result == 14

    def test_reference_to_empty_cell(self) -> None:
        out = _eval(["B2"])
        assert out.error == ErrorKind.INVALID_CELL
        assert out.error == "#REF!"
        assert out.result == 0

    def test_reference_to_cell_with_empty_formula_error(self) -> None:
        """The referenced cell says #EMPTY!; the referencing site says #REF!."""
        store = FakeStore({"A1": CellSnapshot((), 0.0, ErrorKind.EMPTY_FORMULA.value)})
        assert _eval(["A1"], store).error == "#REF!"

    def test_propagated_error_passes_through(self) -> None:
        store = FakeStore({"A1": CellSnapshot(("8", "/", "0"), math.inf, "#DIV/0!")})
        out = _eval(["1", "+", "A1"], store)
        assert out.error == "#DIV/0!"
        assert out.result == 0

    def test_foreign_error_string_passes_through(self) -> None:
        store = FakeStore({"A1": CellSnapshot(("x",), 0.0, "#CUSTOM!")})
        assert _eval(["A1"], store).error == "#CUSTOM!"

    def test_zero_valued_reference_as_divisor(self) -> None:
        store = FakeStore({"A1": CellSnapshot(("0",), 0.0, "")})
        out = _eval(["5", "/", "A1"], store)
        assert out.error == "#DIV/0!"

    def test_custom_label_predicate(self) -> None:
        store = FakeStore({"rate": CellSnapshot(("0.5",), 0.5, "")})
        out = _eval(["10", "*", "rate"], store, is_cell_label=lambda t: t == "rate")
        assert out == Evaluation(5.0, "")

    def test_store_is_not_written(self) -> None:
        snap = CellSnapshot(("3",), 3.0, "")
        store = FakeStore({"A1": snap})
        _eval(["A1", "+", "1"], store)
        assert store.cells == {"A1": snap}


# ────────────────────────────────────────────────────────────────
# Nesting limit
# ────────────────────────────────────────────────────────────────


class TestNestingLimit:
    def test_within_limit(self) -> None:
        tokens = ["("] * 5 + ["1"] + [")"] * 5
        assert _eval(tokens, max_depth=5).result == 1

    def test_over_limit(self) -> None:
        tokens = ["("] * 5 + ["1"] + [")"] * 5
        out = _eval(tokens, max_depth=3)
        assert out.error == ErrorKind.NESTING_TOO_DEEP
        assert out.result == 0

    def test_pathological_input_does_not_crash(self) -> None:
        tokens = ["("] * 5000 + ["1"] + [")"] * 5000
        assert _eval(tokens).error == "#DEPTH!"

    def test_huge_limit_is_clamped(self) -> None:
        tokens = ["("] * 2000 + ["1"] + [")"] * 2000
        out = _eval(tokens, max_depth=100000)
        assert out == Evaluation(0.0, ErrorKind.NESTING_TOO_DEEP.value)

    def test_limit_at_cap_still_evaluates(self) -> None:
        tokens = ["("] * MAX_NESTING_DEPTH + ["7"] + [")"] * MAX_NESTING_DEPTH
        assert _eval(tokens, max_depth=MAX_NESTING_DEPTH) == Evaluation(7.0, "")


# ────────────────────────────────────────────────────────────────
# FormulaEvaluator wrapper
# ────────────────────────────────────────────────────────────────


class TestFormulaEvaluator:
    def test_accessors_before_evaluate(self) -> None:
        ev = FormulaEvaluator(FakeStore())
        assert ev.result == 0
        assert ev.error == ""

    def test_accessors_after_evaluate(self) -> None:
        ev = FormulaEvaluator(FakeStore())
        ev.evaluate(["2", "+", "3"])
        assert ev.result == 5
        assert ev.error == ""

    def test_state_resets_between_calls(self) -> None:
        ev = FormulaEvaluator(FakeStore())
        ev.evaluate(["8", "/", "0"])
        assert ev.error == "#DIV/0!"
        ev.evaluate(["1"])
        assert ev.error == ""
        assert ev.result == 1

    def test_empty_after_success(self) -> None:
        ev = FormulaEvaluator(FakeStore())
        ev.evaluate(["4"])
        ev.evaluate([])
        assert ev.error == "#EMPTY!"
        assert ev.result == 0

    def test_input_is_not_mutated(self) -> None:
        tokens = ["(", "2", "+", "3", ")", "*", "4", "junk"]
        before = list(tokens)
        ev = FormulaEvaluator(FakeStore())
        ev.evaluate(tokens)
        assert tokens == before

    def test_deterministic(self) -> None:
        store = FakeStore({"A1": CellSnapshot(("2",), 2.0, "")})
        ev = FormulaEvaluator(store)
        tokens = ["A1", "*", "(", "3", "+", "A1", ")", "+/-"]
        ev.evaluate(tokens)
        first = (ev.result, ev.error)
        ev.evaluate(tokens)
        assert (ev.result, ev.error) == first == (-10, "")

    def test_max_depth_is_configurable(self) -> None:
        ev = FormulaEvaluator(FakeStore(), max_depth=1)
        ev.evaluate(["(", "(", "1", ")", ")"])
        assert ev.error == "#DEPTH!"

    def test_accepts_tuple_input(self) -> None:
        ev = FormulaEvaluator(FakeStore())
        ev.evaluate(("3", "*", "3"))
        assert ev.last_evaluation == Evaluation(9.0, "")


class TestIsNumber:
    @pytest.mark.parametrize("token", ["0", "12", "1.5", ".5", "5.", "2e3", "-3", "+4"])
    def test_numbers(self, token: str) -> None:
        assert is_number(token)

    @pytest.mark.parametrize("token", ["A1", "+", "+/-", "(", "nan", "1e", "."])
    def test_not_numbers(self, token: str) -> None:
        assert not is_number(token)
