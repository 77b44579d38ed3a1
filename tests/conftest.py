"""Pytest configuration and fixtures."""

import os
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

# Set test environment variables before importing settings
os.environ.setdefault("SPREADSHEET_ID", "test-spreadsheet")
os.environ.setdefault("SHEETS_ACCESS_TOKEN", "test-token")

from visa_tracker.cache import SnapshotCache  # noqa: E402
from visa_tracker.config import configure_logging  # noqa: E402
from visa_tracker.schema import EMPLOYEE_COLUMNS, EMPLOYEE_HEADERS, TASK_HEADERS  # noqa: E402
from visa_tracker.store.base import StoreError  # noqa: E402
from visa_tracker.sync import SyncCoordinator  # noqa: E402

# Logs go to stderr; keep command output on stdout readable in assertions
configure_logging(level="WARNING", format="console")

TODAY = date(2024, 6, 1)

_RANGE = re.compile(r"^([A-Z]+)(\d+):([A-Z]+)(\d+)$")


def _column_number(letters: str) -> int:
    number = 0
    for letter in letters:
        number = number * 26 + (ord(letter) - ord("A") + 1)
    return number


@dataclass
class TableStoreStub:
    """In-memory table store with spreadsheet row semantics.

    ``tables[name][0]`` is the header row, so list position ``i`` is
    physical row ``i + 1``. Deleting a row shifts the following rows up.
    """

    tables: dict[str, list[list[str]]] = field(default_factory=dict)
    failing_reads: set[str] = field(default_factory=set)
    fail_list: bool = False
    fail_writes: bool = False
    calls: list[tuple] = field(default_factory=list)

    def _table(self, table: str) -> list[list[str]]:
        if table not in self.tables:
            raise StoreError(f"Unknown table {table}", status_code=404)
        return self.tables[table]

    def _check_write(self) -> None:
        if self.fail_writes:
            raise StoreError("write rejected", status_code=503)

    async def list_tables(self) -> list[str]:
        self.calls.append(("list_tables",))
        if self.fail_list:
            raise StoreError("unreachable", status_code=503)
        return list(self.tables)

    async def read(self, table: str, cell_range: str) -> list[list[str]]:
        self.calls.append(("read", table, cell_range))
        if table in self.failing_reads:
            raise StoreError(f"read of {table} failed", status_code=500)
        rows = self._table(table)
        match = _RANGE.match(cell_range)
        assert match, cell_range
        width = _column_number(match.group(3))
        start, end = int(match.group(2)), int(match.group(4))
        selected = [list(row[:width]) for row in rows[start - 1 : end]]
        while selected and not any(selected[-1]):
            selected.pop()
        return selected

    async def append(self, table: str, row: Sequence[str]) -> None:
        self.calls.append(("append", table, list(row)))
        self._check_write()
        self._table(table).append(list(row))

    async def update(self, table: str, row_index: int, row: Sequence[str]) -> None:
        self.calls.append(("update", table, row_index, list(row)))
        self._check_write()
        rows = self._table(table)
        while len(rows) < row_index:
            rows.append([])
        rows[row_index - 1] = list(row)

    async def delete(self, table: str, row_index: int) -> None:
        self.calls.append(("delete", table, row_index))
        self._check_write()
        rows = self._table(table)
        if row_index <= len(rows):
            rows.pop(row_index - 1)

    async def write_headers(self, table: str, headers: Sequence[str]) -> None:
        self.calls.append(("write_headers", table))
        self._check_write()
        rows = self._table(table)
        if rows:
            rows[0] = list(headers)
        else:
            rows.append(list(headers))

    async def create_table(self, table: str, headers: Sequence[str]) -> None:
        self.calls.append(("create_table", table))
        self._check_write()
        self.tables[table] = [list(headers)]

    async def drop_table(self, table: str) -> None:
        self.calls.append(("drop_table", table))
        self._check_write()
        self._table(table)
        del self.tables[table]

    def writes(self) -> list[tuple]:
        return [c for c in self.calls if c[0] in ("append", "update", "delete")]


def employee_row(id: str, name: str, **values: str) -> list[str]:
    """Build a 17-column employee row from keyword fields."""
    row = [""] * len(EMPLOYEE_COLUMNS)
    row[0] = id
    row[1] = name
    for key, value in values.items():
        row[EMPLOYEE_COLUMNS.index(key)] = value
    return row


def task_row(
    id: str,
    name: str,
    company: str,
    transaction: str,
    status: str = "Pending",
    category: str = "Visa Process",
    day: str = "2024-05-30",
) -> list[str]:
    return [id, day, name, company, category, transaction, status, "", "", ""]


@pytest.fixture
def store():
    """A store with one company, one system table and a task table."""
    return TableStoreStub(
        tables={
            "Dashboard": [["Summary"]],
            "Acme Trading": [
                list(EMPLOYEE_HEADERS),
                employee_row("1", "John Doe", entry_permit_status="Approved"),
                employee_row(
                    "2",
                    "Jane Roe",
                    entry_permit_status="Approved",
                    entry_date="2024-05-01",
                    medical_application="Applied",
                    visa_last_day="2024-06-20",
                ),
                employee_row("3", "Ali Khan", contract="Pending"),
            ],
            "Daily Report": [
                list(TASK_HEADERS),
                task_row("1001", "Jane Roe", "Acme Trading", "Medical Result"),
            ],
        }
    )


@pytest.fixture
def cache(tmp_path):
    return SnapshotCache(tmp_path / "snapshot.json")


@pytest.fixture
def coordinator(store, cache):
    return SyncCoordinator(store, cache=cache)


@pytest_asyncio.fixture
async def synced(coordinator):
    """Coordinator after a successful full sync."""
    await coordinator.full_sync()
    return coordinator


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx AsyncClient."""
    client = AsyncMock()
    client.request = AsyncMock()
    client.aclose = AsyncMock()
    return client
