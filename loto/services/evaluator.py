from enum import Enum
from typing import Collection

from .ticket import Ticket


class Verdict(str, Enum):
    NONE = 'no_win'
    ROW = 'row_win'
    FULL_HOUSE = 'full_house'


def _settled(cell, called: Collection[int]) -> bool:
    # A mark left over from before a reset does not count
    return cell.marked and cell.value in called


def winning_rows(ticket: Ticket, called: Collection[int]) -> list[int]:
    """Indexes of rows whose every number is marked and called."""
    rows = []
    for idx, row in enumerate(ticket):
        cells = [cell for cell in row if cell is not None]
        if cells and all(_settled(cell, called) for cell in cells):
            rows.append(idx)
    return rows


def evaluate(ticket: Ticket, called: Collection[int]) -> Verdict:
    """Pure verdict for a ticket against the draw history. Full house wins over a row."""
    called = set(called)
    cells = list(ticket.cells())
    if cells and all(_settled(cell, called) for cell in cells):
        return Verdict.FULL_HOUSE
    if winning_rows(ticket, called):
        return Verdict.ROW
    return Verdict.NONE
