"""Cell labels, cell records and the in-memory cell store."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from sheetcalc.formulas.errors import CellLabelError

_LABEL_RE = re.compile(r"^([A-Z]{1,3})([1-9][0-9]*)$")

# Default grid size; overridable from ``sheetcalc.yaml``.
DEFAULT_ROWS = 100
DEFAULT_COLS = 26


def is_valid_cell_label(token: str) -> bool:
    """Return True if *token* looks like a cell label (``A1``, ``AB23``)."""
    return bool(_LABEL_RE.match(token))


def col_letter_to_index(letters: str) -> int:
    """Convert column letter(s) to 0-based index.  A=0, B=1, ..., Z=25, AA=26."""
    idx = 0
    for ch in letters:
        idx = idx * 26 + (ord(ch) - ord("A") + 1)
    return idx - 1


def index_to_col_letter(idx: int) -> str:
    """Convert 0-based column index to letter(s).  0=A, 25=Z, 26=AA."""
    result = ""
    n = idx + 1
    while n > 0:
        n, rem = divmod(n - 1, 26)
        result = chr(65 + rem) + result
    return result


def parse_label(label: str) -> tuple[int, int]:
    """Parse 'A1' -> (row_0based, col_0based).

    Raises ValueError on bad label.
    """
    m = _LABEL_RE.match(label)
    if not m:
        raise ValueError(f"Invalid cell label: {label!r}")
    col = col_letter_to_index(m.group(1))
    row = int(m.group(2)) - 1
    return row, col


def make_label(row: int, col: int) -> str:
    """Build cell label from 0-based row/col."""
    return f"{index_to_col_letter(col)}{row + 1}"


@dataclass(frozen=True)
class CellSnapshot:
    """Read-only view of a cell handed to the evaluator."""

    formula: tuple[str, ...] = ()
    value: float = 0.0
    error: str = ""


_EMPTY_SNAPSHOT = CellSnapshot()


@dataclass
class Cell:
    """A single stored cell: its token formula and the cached outcome."""

    label: str
    formula: list[str] = field(default_factory=list)
    value: float = 0.0
    error: str = ""

    def snapshot(self) -> CellSnapshot:
        return CellSnapshot(tuple(self.formula), self.value, self.error)


class SheetMemory:
    """Dict-backed cell store bounded to a ``rows`` x ``cols`` grid.

    Untouched labels read back as an empty snapshot, so lookups never fail.
    """

    def __init__(self, rows: int = DEFAULT_ROWS, cols: int = DEFAULT_COLS) -> None:
        if rows < 1 or cols < 1:
            raise ValueError(f"Sheet must have at least one cell, got {rows}x{cols}")
        self.rows = rows
        self.cols = cols
        self._cells: dict[str, Cell] = {}

    def in_bounds(self, label: str) -> bool:
        try:
            row, col = parse_label(label)
        except ValueError:
            return False
        return row < self.rows and col < self.cols

    def get_cell_by_label(self, label: str) -> CellSnapshot:
        """Return the snapshot stored under *label*, or an empty one."""
        cell = self._cells.get(label)
        if cell is None:
            return _EMPTY_SNAPSHOT
        return cell.snapshot()

    def set_cell_by_label(self, label: str, cell: Cell) -> None:
        """Store *cell* under *label*.

        Raises:
            CellLabelError: If *label* is malformed or outside the grid.
        """
        if not is_valid_cell_label(label):
            raise CellLabelError(label)
        if not self.in_bounds(label):
            raise CellLabelError(
                label, f"Cell {label!r} is outside the {self.rows}x{self.cols} sheet"
            )
        self._cells[label] = cell

    def labels(self) -> list[str]:
        """Populated labels in row-major order."""
        return sorted(self._cells, key=parse_label)

    def __contains__(self, label: object) -> bool:
        return label in self._cells

    def __len__(self) -> int:
        return len(self._cells)
