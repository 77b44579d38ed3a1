"""Boundary contracts for the external table store and operator prompts."""

from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Protocol


class StoreError(Exception):
    """A store operation failed."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class TableStore(Protocol):
    """Position-addressed tabular store.

    Row 1 of every table is the header row; ``row_index`` arguments are
    1-based physical positions and data rows start at 2. Deleting a row
    shifts every following row up by one.
    """

    async def list_tables(self) -> list[str]: ...

    async def read(self, table: str, cell_range: str) -> list[list[str]]: ...

    async def append(self, table: str, row: Sequence[str]) -> None: ...

    async def update(self, table: str, row_index: int, row: Sequence[str]) -> None: ...

    async def delete(self, table: str, row_index: int) -> None: ...

    async def write_headers(self, table: str, headers: Sequence[str]) -> None: ...

    async def create_table(self, table: str, headers: Sequence[str]) -> None: ...

    async def drop_table(self, table: str) -> None: ...


# Asks the operator for a field value; returns None when they cancel.
ConfirmValue = Callable[[str, str], Awaitable[str | None]]


def column_letter(position: int) -> str:
    """Spreadsheet column letter for a 1-based column position."""
    letters = ""
    while position > 0:
        position, remainder = divmod(position - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


def row_range(row_index: int, width: int) -> str:
    """A1 range covering one full row, e.g. ``A5:Q5``."""
    return f"A{row_index}:{column_letter(width)}{row_index}"


def data_range(width: int, last_row: int) -> str:
    """A1 range covering every data row up to ``last_row``."""
    return f"A2:{column_letter(width)}{last_row}"
