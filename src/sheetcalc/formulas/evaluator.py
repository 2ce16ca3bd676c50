"""Recursive-descent evaluator for tokenized cell formulas.

Grammar::

    sum    := term (("+" | "-") term)*
    term   := factor ("*" factor | "/" factor | "+/-")*
    factor := NUMBER | "(" sum ")" | CELL_LABEL

Errors never raise.  The first error found is latched together with a
fallback value and reported through ``Evaluation``; every later parsing
step returns the fallback without computing anything.

``+/-`` is a postfix sign toggle on the running term value.  A
multiplicative step whose right operand is zero latches ``#DIV/0!`` for
both ``*`` and ``/`` (kept for compatibility with existing sheets).
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Callable, Protocol, Sequence

from sheetcalc.formulas.errors import ErrorKind


# ---------------------------------------------------------------------------
# Store protocol: the evaluator only ever reads snapshots
# ---------------------------------------------------------------------------


class CellSnapshotLike(Protocol):
    formula: Sequence[str]
    value: float
    error: str


class CellStore(Protocol):
    """Protocol for resolving cell labels to cached cell state."""

    def get_cell_by_label(self, label: str) -> CellSnapshotLike:
        """Return a snapshot for *label*; an empty one if never set."""
        ...


@dataclass(frozen=True)
class Evaluation:
    """Outcome of one formula evaluation."""

    result: float
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error


DEFAULT_MAX_DEPTH = 64
# Each nesting level costs several interpreter frames; deeper limits would
# overflow the Python stack before ``#DEPTH!`` could be reported.
MAX_NESTING_DEPTH = 150

_ADD_OPS = frozenset({"+", "-"})
_MUL_OPS = frozenset({"*", "/", "+/-"})
_SIGN_TOGGLE = "+/-"

# Plain decimal literals only: no inf/nan spellings, no underscores.
_NUMBER_RE = re.compile(r"^[+-]?([0-9]+(\.[0-9]*)?|\.[0-9]+)([eE][+-]?[0-9]+)?$")


def is_number(token: str) -> bool:
    """Return True if *token* is a numeric literal."""
    return bool(_NUMBER_RE.match(token))


# ---------------------------------------------------------------------------
# Per-call parser state
# ---------------------------------------------------------------------------


class _Parser:
    """Cursor, latched error and last good value for a single evaluation."""

    def __init__(
        self,
        tokens: tuple[str, ...],
        store: CellStore,
        is_cell_label: Callable[[str], bool],
        max_depth: int,
    ) -> None:
        self._tokens = tokens
        self._pos = 0
        self._depth = 0
        self._store = store
        self._is_cell_label = is_cell_label
        self._max_depth = max_depth
        self.error = ""
        self.last_good = 0.0

    @property
    def failed(self) -> bool:
        return bool(self.error)

    @property
    def remaining(self) -> int:
        return len(self._tokens) - self._pos

    def _peek(self) -> str | None:
        if self._pos < len(self._tokens):
            return self._tokens[self._pos]
        return None

    def _next(self) -> str | None:
        token = self._peek()
        if token is not None:
            self._pos += 1
        return token

    def latch(self, error: str, value: float | None = None) -> None:
        """Record *error* unless one is already latched.

        *value* replaces the last good value; ``None`` keeps it.
        """
        if self.failed:
            return
        self.error = error.value if isinstance(error, ErrorKind) else error
        if value is not None:
            self.last_good = value

    # -- grammar ------------------------------------------------------------

    def parse_sum(self) -> float:
        if self.failed:
            return self.last_good

        result = self.parse_term()
        while not self.failed and self._peek() in _ADD_OPS:
            op = self._next()
            value = self.parse_term()
            if self.failed:
                break
            result = result + value if op == "+" else result - value

        if self.failed:
            return self.last_good
        self.last_good = result
        return result

    def parse_term(self) -> float:
        if self.failed:
            return self.last_good

        result = self.parse_factor()
        while not self.failed and self._peek() in _MUL_OPS:
            op = self._next()
            if op == _SIGN_TOGGLE:
                result = -result if result != 0 else 0.0
                continue

            operand = self.parse_factor()
            if self.failed:
                break
            if operand == 0:
                self.latch(ErrorKind.DIVIDE_BY_ZERO, math.inf)
                break
            result = result * operand if op == "*" else result / operand

        if self.failed:
            return self.last_good
        self.last_good = result
        return result

    def parse_factor(self) -> float:
        if self.failed:
            return self.last_good

        token = self._next()
        if token is None:
            self.latch(ErrorKind.INVALID_FORMULA, 0.0)
            return 0.0

        if is_number(token):
            value = float(token)
            self.last_good = value
            return value

        if token == "(":
            return self._parse_group()

        if self._is_cell_label(token):
            value, error = self._cell_value(token)
            if error:
                self.latch(error, value)
                return value
            self.last_good = value
            return value

        self.latch(ErrorKind.INVALID_FORMULA, 0.0)
        return 0.0

    def _parse_group(self) -> float:
        if self._depth >= self._max_depth:
            self.latch(ErrorKind.NESTING_TOO_DEEP, 0.0)
            return 0.0

        self._depth += 1
        value = self.parse_sum()
        self._depth -= 1
        if self.failed:
            return self.last_good

        if self._peek() != ")":
            # The interior value is still reported.
            self.latch(ErrorKind.MISSING_PARENTHESES, value)
            return value
        self._next()
        self.last_good = value
        return value

    def _cell_value(self, label: str) -> tuple[float, str]:
        """Return ``(value, "")`` or ``(0, error)`` for a referenced cell.

        A referenced cell without a formula is ``#REF!`` even though the
        same cell reports ``#EMPTY!`` about itself.
        """
        cell = self._store.get_cell_by_label(label)
        error = cell.error
        if error and error != ErrorKind.EMPTY_FORMULA.value:
            return 0.0, error
        if len(cell.formula) == 0:
            return 0.0, ErrorKind.INVALID_CELL.value
        return float(cell.value), ""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def evaluate_formula(
    formula: Sequence[str],
    store: CellStore,
    *,
    is_cell_label: Callable[[str], bool] | None = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Evaluation:
    """Evaluate a token sequence against a cell store.

    Args:
        formula: Tokens produced by ``tokenize()``.  Never modified.
        store: Read-only source of referenced cell snapshots.
        is_cell_label: Predicate classifying a token as a cell reference.
            Defaults to ``sheetcalc.cells.is_valid_cell_label``.
        max_depth: Maximum parenthesis nesting before ``#DEPTH!``.  Values
            above ``MAX_NESTING_DEPTH`` are clamped to it.

    Returns:
        The ``Evaluation``.  On error, ``result`` is the fallback value:
        the value at the point of failure (``inf`` for ``#DIV/0!``, 0 for
        a bad reference).  Terms after the failure are not added in, so
        ``2*3 + (1`` reports 1.  A NaN fallback is reported as 0.
    """
    tokens = tuple(formula)
    if not tokens:
        return Evaluation(0.0, ErrorKind.EMPTY_FORMULA.value)

    if is_cell_label is None:
        # Local import to avoid circular dependency
        from sheetcalc.cells import is_valid_cell_label

        is_cell_label = is_valid_cell_label

    parser = _Parser(tokens, store, is_cell_label, min(max_depth, MAX_NESTING_DEPTH))
    try:
        value = parser.parse_sum()
    except RecursionError:
        # Caller already deep in the stack; treat as too much nesting.
        return Evaluation(0.0, ErrorKind.NESTING_TOO_DEEP.value)

    if parser.remaining and not parser.failed:
        # Trailing tokens after a complete expression.
        parser.latch(ErrorKind.INVALID_FORMULA)
    elif not parser.failed and math.isnan(value):
        parser.latch(ErrorKind.INVALID_FORMULA, 0.0)

    if parser.failed:
        fallback = parser.last_good
        if math.isnan(fallback):
            fallback = 0.0
        return Evaluation(fallback, parser.error)
    return Evaluation(value)


class FormulaEvaluator:
    """Stateful wrapper exposing ``result`` / ``error`` after ``evaluate``.

    Each ``evaluate`` call parses with its own state; only the finished
    ``Evaluation`` is kept on the instance.

    Usage::

        ev = FormulaEvaluator(memory)
        ev.evaluate(["(", "A1", "+", "2", ")", "*", "3"])
        ev.result, ev.error
    """

    def __init__(
        self,
        store: CellStore,
        *,
        is_cell_label: Callable[[str], bool] | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        self._store = store
        self._is_cell_label = is_cell_label
        self.max_depth = max_depth
        self._last = Evaluation(0.0)

    def evaluate(self, formula: Sequence[str]) -> None:
        self._last = evaluate_formula(
            formula,
            self._store,
            is_cell_label=self._is_cell_label,
            max_depth=self.max_depth,
        )

    @property
    def result(self) -> float:
        return self._last.result

    @property
    def error(self) -> str:
        return self._last.error

    @property
    def last_evaluation(self) -> Evaluation:
        return self._last
