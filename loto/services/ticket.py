"""Ticket layout: a 3x9 grid, five numbers per row, one numeric band per column."""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum
from typing import Collection, Iterator, Optional

from loto.errors import ValidationError

ROWS = 3
COLUMNS = 9
NUMBERS_PER_ROW = 5
POOL_MIN = 1
POOL_MAX = 90

# Column i holds [10*i, 10*i + 9], except the first starts at 1 and the last ends at 90.
COLUMN_BANDS: tuple[tuple[int, int], ...] = (
    (1, 9), (10, 19), (20, 29), (30, 39), (40, 49),
    (50, 59), (60, 69), (70, 79), (80, 90),
)


def band_for(column: int) -> tuple[int, int]:
    return COLUMN_BANDS[column]


def column_for(value: int) -> int:
    if not POOL_MIN <= value <= POOL_MAX:
        raise ValidationError(f"{value} is outside {POOL_MIN}..{POOL_MAX}")
    return min(value // 10, COLUMNS - 1)


class MarkResult(str, Enum):
    MARKED = 'marked'
    UNMARKED = 'unmarked'
    # The number has not been called: no-op, not an error
    NOT_CALLED = 'not_called'
    EMPTY = 'empty'


@dataclass
class Cell:
    value: int
    marked: bool = False

    def to_dict(self):
        return {'value': self.value, 'marked': self.marked}


class Ticket:
    """One participant's grid. Cells are ``None`` (empty) or a :class:`Cell`."""

    def __init__(self, rows: list[list[Optional[Cell]]]):
        self.rows = rows

    def __iter__(self) -> Iterator[list[Optional[Cell]]]:
        return iter(self.rows)

    def cell(self, row: int, col: int) -> Optional[Cell]:
        return self.rows[row][col]

    def cells(self) -> Iterator[Cell]:
        for row in self.rows:
            for cell in row:
                if cell is not None:
                    yield cell

    def values(self) -> list[int]:
        return [cell.value for cell in self.cells()]

    def find(self, value: int) -> Optional[tuple[int, int]]:
        for r, row in enumerate(self.rows):
            for c, cell in enumerate(row):
                if cell is not None and cell.value == value:
                    return r, c
        return None

    def mark(self, row: int, col: int, called: Collection[int], marked: Optional[bool] = None) -> MarkResult:
        """Toggle the mark on a cell whose number has been called.

        Pass ``marked`` to set the mark instead of toggling it. Uncalled
        numbers are refused without touching the ticket.
        """
        if not (0 <= row < ROWS and 0 <= col < COLUMNS):
            raise ValidationError(f"No cell at row {row}, column {col}")
        cell = self.rows[row][col]
        if cell is None:
            return MarkResult.EMPTY
        if cell.value not in called:
            return MarkResult.NOT_CALLED
        cell.marked = (not cell.marked) if marked is None else marked
        return MarkResult.MARKED if cell.marked else MarkResult.UNMARKED

    def mark_value(self, value: int, called: Collection[int], marked: Optional[bool] = None) -> MarkResult:
        pos = self.find(value)
        if pos is None:
            return MarkResult.EMPTY
        return self.mark(pos[0], pos[1], called, marked)

    def clear_marks(self) -> None:
        for cell in self.cells():
            cell.marked = False

    def validate(self) -> None:
        """Raise ValidationError listing every broken layout rule."""
        problems: list[str] = []
        if len(self.rows) != ROWS or any(len(row) != COLUMNS for row in self.rows):
            raise ValidationError("Ticket must be a 3x9 grid")

        for r, row in enumerate(self.rows):
            filled = sum(1 for cell in row if cell is not None)
            if filled != NUMBERS_PER_ROW:
                problems.append(f"row {r} has {filled} numbers, expected {NUMBERS_PER_ROW}")

        for c in range(COLUMNS):
            lo, hi = band_for(c)
            column = [self.rows[r][c].value for r in range(ROWS) if self.rows[r][c] is not None]
            for value in column:
                if not lo <= value <= hi:
                    problems.append(f"column {c} holds {value}, outside {lo}..{hi}")
            if any(a >= b for a, b in zip(column, column[1:])):
                problems.append(f"column {c} is not strictly increasing top to bottom")

        values = self.values()
        if len(values) != len(set(values)):
            problems.append("ticket repeats a number")

        if problems:
            raise ValidationError("Invalid ticket", details=problems)

    def to_rows(self) -> list[list[Optional[dict]]]:
        return [[cell.to_dict() if cell else None for cell in row] for row in self.rows]

    @classmethod
    def from_rows(cls, data) -> 'Ticket':
        try:
            rows = [
                [Cell(int(cell['value']), bool(cell.get('marked', False))) if cell else None for cell in row]
                for row in data
            ]
        except (TypeError, KeyError, ValueError) as exc:
            raise ValidationError("Malformed ticket data") from exc
        ticket = cls(rows)
        ticket.validate()
        return ticket


def generate_ticket(rng: Optional[random.Random] = None) -> Ticket:
    """Build a valid ticket.

    Each row independently picks 5 of the 9 columns and a random value from
    each column's band, redrawing on collision within the column. A final pass
    sorts every column top to bottom without moving the empty cells.
    """
    rng = rng or random.Random()
    grid: list[list[Optional[Cell]]] = [[None] * COLUMNS for _ in range(ROWS)]

    for r in range(ROWS):
        for c in rng.sample(range(COLUMNS), NUMBERS_PER_ROW):
            lo, hi = band_for(c)
            taken = {grid[i][c].value for i in range(ROWS) if grid[i][c] is not None}
            value = rng.randint(lo, hi)
            # At most two values are taken per column
            while value in taken:
                value = rng.randint(lo, hi)
            grid[r][c] = Cell(value)

    for c in range(COLUMNS):
        filled_rows = [r for r in range(ROWS) if grid[r][c] is not None]
        ordered = sorted(grid[r][c].value for r in filled_rows)
        for r, value in zip(filled_rows, ordered):
            grid[r][c] = Cell(value)

    return Ticket(grid)
