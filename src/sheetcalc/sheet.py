"""Sheet controller: formula entry, evaluation and YAML sheet files.

A ``Sheet`` owns a ``SheetMemory`` and a ``FormulaEvaluator``.  Each
``set_formula`` call tokenizes the text, evaluates it against the values
currently cached for referenced cells and stores the outcome.  Cells are
evaluated in the order they are entered; dependents are not recomputed.
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Any, Iterable

import yaml

from sheetcalc.cells import DEFAULT_COLS, DEFAULT_ROWS, Cell, SheetMemory, is_valid_cell_label
from sheetcalc.formulas.errors import (
    CellLabelError,
    ErrorKind,
    FormulaParseError,
    SheetConfigError,
)
from sheetcalc.formulas.evaluator import DEFAULT_MAX_DEPTH, Evaluation, FormulaEvaluator
from sheetcalc.formulas.tokenizer import format_formula, tokenize
from sheetcalc.logging.events import (
    FORMULA_EVAL_ERROR,
    FORMULA_PARSE_ERROR,
    EventLevel,
    EventType,
    emit,
    emit_info,
    emit_warning,
    make_cell_event,
)

logger = logging.getLogger(__name__)


def format_value(value: float) -> str:
    """Render a cell value, dropping ``.0`` from integral numbers."""
    if math.isfinite(value) and value == int(value):
        return str(int(value))
    return str(value)


class Sheet:
    """A named grid of cells whose formulas are evaluated on entry."""

    def __init__(
        self,
        name: str = "Sheet1",
        *,
        rows: int = DEFAULT_ROWS,
        cols: int = DEFAULT_COLS,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        self.name = name
        self.memory = SheetMemory(rows, cols)
        self.evaluator = FormulaEvaluator(self.memory, max_depth=max_depth)
        self._sources: dict[str, str] = {}

    @classmethod
    def from_config(cls, name: str, config: dict[str, Any]) -> Sheet:
        """Build a sheet sized and limited by a project config dict."""
        return cls(
            name,
            rows=int(config.get("rows", DEFAULT_ROWS)),
            cols=int(config.get("cols", DEFAULT_COLS)),
            max_depth=int(config.get("max_nesting_depth", DEFAULT_MAX_DEPTH)),
        )

    def set_formula(self, label: str, text: str) -> Evaluation:
        """Enter *text* into cell *label* and evaluate it.

        Text that cannot be tokenized is stored with ``#ERR!``.

        Raises:
            CellLabelError: If *label* is malformed or outside the grid.
        """
        if not is_valid_cell_label(label) or not self.memory.in_bounds(label):
            raise CellLabelError(
                label, f"Cell {label!r} is not in the {self.memory.rows}x{self.memory.cols} sheet"
            )

        error_code = FORMULA_EVAL_ERROR
        try:
            tokens = tokenize(text)
        except FormulaParseError as exc:
            logger.debug("Tokenizing %s!%s failed: %s", self.name, label, exc)
            tokens = []
            outcome = Evaluation(0.0, ErrorKind.INVALID_FORMULA.value)
            error_code = FORMULA_PARSE_ERROR
        else:
            self.evaluator.evaluate(tokens)
            outcome = self.evaluator.last_evaluation

        self.memory.set_cell_by_label(
            label, Cell(label, list(tokens), outcome.result, outcome.error)
        )
        self._sources[label] = text
        self._emit_cell(label, tokens, outcome, error_code)
        return outcome

    def set_cells(self, cells: Iterable[tuple[str, str]]) -> list[tuple[str, Evaluation]]:
        """Enter several ``(label, text)`` pairs in order."""
        results = [(label, self.set_formula(label, text)) for label, text in cells]
        failed = sum(1 for _, outcome in results if not outcome.ok)
        emit_info(
            EventType.sheet_evaluated,
            f"Evaluated {len(results)} cell(s), {failed} with errors",
            {"sheet": self.name, "cells": len(results), "errors": failed},
            sheet=self.name,
        )
        return results

    def get_value(self, label: str) -> float:
        return self.memory.get_cell_by_label(label).value

    def get_error(self, label: str) -> str:
        return self.memory.get_cell_by_label(label).error

    def get_formula(self, label: str) -> list[str]:
        return list(self.memory.get_cell_by_label(label).formula)

    def get_source(self, label: str) -> str:
        """The text last entered into *label* (empty if never set)."""
        return self._sources.get(label, "")

    def display(self, label: str) -> str:
        """What the cell shows: its error, its value, or nothing if empty."""
        cell = self.memory.get_cell_by_label(label)
        if cell.error == ErrorKind.EMPTY_FORMULA.value:
            return ""
        if cell.error:
            return cell.error
        if not cell.formula:
            return ""
        return format_value(cell.value)

    def labels(self) -> list[str]:
        return self.memory.labels()

    def _emit_cell(
        self,
        label: str,
        tokens: list[str],
        outcome: Evaluation,
        error_code: str,
    ) -> None:
        ctx = {
            "formula": format_formula(tokens),
            "value": outcome.result if math.isfinite(outcome.result) else str(outcome.result),
        }
        if not outcome.ok:
            emit_warning(
                EventType.cell_error,
                f"{label}: {outcome.error}",
                {"label": label, "sheet": self.name, **ctx, "error": outcome.error},
                error_code=error_code,
                sheet=self.name,
            )
            return
        event = make_cell_event(
            EventType.cell_evaluated,
            EventLevel.info,
            f"{label} = {format_value(outcome.result)}",
            label=label,
            sheet=self.name,
            extra=ctx,
        )
        emit(event, sheet=self.name)


def load_sheet(path: Path, config: dict[str, Any] | None = None) -> Sheet:
    """Load and evaluate a YAML sheet file.

    Format::

        name: Budget
        rows: 20          # optional, falls back to config
        cols: 5
        cells:            # evaluated top to bottom
          A1: 10
          A2: A1 * 2

    Raises:
        SheetConfigError: If the file is missing or malformed.
    """
    path = Path(path)
    config = config or {}
    if not path.exists():
        raise SheetConfigError(f"Sheet file not found: {path}")
    try:
        spec = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:
        raise SheetConfigError(f"{path}: {exc}") from exc
    if not isinstance(spec, dict):
        raise SheetConfigError(f"{path}: expected a mapping at top level")

    cells = spec.get("cells") or {}
    if not isinstance(cells, dict):
        raise SheetConfigError(f"{path}: 'cells' must be a mapping of label to formula")

    merged = {**config, **{k: spec[k] for k in ("rows", "cols") if k in spec}}
    name = str(spec.get("name") or path.stem)
    try:
        sheet = Sheet.from_config(name, merged)
    except (TypeError, ValueError) as exc:
        raise SheetConfigError(f"{path}: {exc}") from exc

    emit_info(
        EventType.sheet_loaded,
        f"Loaded sheet {name!r} from {path.name}",
        {"sheet": name, "path": str(path), "cells": len(cells)},
        sheet=name,
    )
    entries = [(str(label), "" if text is None else str(text)) for label, text in cells.items()]
    try:
        sheet.set_cells(entries)
    except CellLabelError as exc:
        raise SheetConfigError(f"{path}: {exc}") from exc
    return sheet
