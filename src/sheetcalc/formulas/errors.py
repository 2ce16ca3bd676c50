"""Error types for formula tokenizing, evaluation and cell storage."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Error strings latched by the evaluator and stored on cells.

    The evaluator never raises; callers inspect ``Evaluation.error`` and
    compare against these values.
    """

    EMPTY_FORMULA = "#EMPTY!"
    INVALID_FORMULA = "#ERR!"
    DIVIDE_BY_ZERO = "#DIV/0!"
    MISSING_PARENTHESES = "#PAREN!"
    INVALID_CELL = "#REF!"
    NESTING_TOO_DEEP = "#DEPTH!"


class FormulaError(Exception):
    """Base class for all formula-related errors."""


class FormulaParseError(FormulaError):
    """Formula text that cannot be split into tokens.

    Attributes:
        position: Column where the error was detected.
        message: Human-readable description.
    """

    def __init__(self, message: str, position: int | None = None) -> None:
        self.position = position
        full = f"Formula parse error: {message}"
        if position is not None:
            full += f" (at position {position})"
        super().__init__(full)


class CellLabelError(FormulaError):
    """Write to a label that is malformed or outside the sheet.

    Attributes:
        label: The rejected label.
    """

    def __init__(self, label: str, message: str | None = None) -> None:
        self.label = label
        super().__init__(message or f"Invalid cell label: {label!r}")


class SheetConfigError(FormulaError):
    """Malformed sheet file or project configuration."""
