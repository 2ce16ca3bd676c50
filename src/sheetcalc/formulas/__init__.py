"""Token-level formula tokenizing and evaluation.

Public API::

    from sheetcalc.formulas import tokenize, evaluate_formula, FormulaEvaluator
"""

from sheetcalc.formulas.errors import (
    CellLabelError,
    ErrorKind,
    FormulaError,
    FormulaParseError,
    SheetConfigError,
)
from sheetcalc.formulas.evaluator import (
    DEFAULT_MAX_DEPTH,
    MAX_NESTING_DEPTH,
    CellStore,
    Evaluation,
    FormulaEvaluator,
    evaluate_formula,
    is_number,
)
from sheetcalc.formulas.tokenizer import format_formula, tokenize

__all__ = [
    "CellLabelError",
    "CellStore",
    "DEFAULT_MAX_DEPTH",
    "MAX_NESTING_DEPTH",
    "ErrorKind",
    "Evaluation",
    "FormulaError",
    "FormulaEvaluator",
    "FormulaParseError",
    "SheetConfigError",
    "evaluate_formula",
    "format_formula",
    "is_number",
    "tokenize",
]
