"""Synchronization between the position-addressed store and the local snapshot.

The store knows records only by physical row. The coordinator is the one
place that translates record keys into row positions: everything above it
works with ``(company, id)`` for employees and task ids for tasks.

Each table moves through ``STALE -> SYNCING -> FRESH``. A delete at row ``r``
shifts every later row, so from that moment every cached index ``>= r`` in the
table is wrong until the table is read again; positional writes against such
an index are refused with ``StaleRowIndex``. Appends do not move existing
rows but leave the new row out of the snapshot, so the table is re-read after
them too. Same-row updates are patched into the snapshot directly.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, replace
from enum import Enum
from typing import TypeVar

import structlog

from visa_tracker.cache import SnapshotCache
from visa_tracker.config import get_settings
from visa_tracker.errors import (
    ExternalReadFailure,
    ExternalWriteFailure,
    InvariantViolation,
    RecordNotFound,
    StaleRowIndex,
    ValidationError,
)
from visa_tracker.schema import (
    EMPLOYEE_COLUMNS,
    EMPLOYEE_HEADERS,
    FIRST_DATA_ROW,
    TASK_COLUMNS,
    TASK_HEADERS,
    DailyTask,
    Employee,
)
from visa_tracker.snapshot import Snapshot
from visa_tracker.store.base import StoreError, TableStore, data_range, row_range

logger = structlog.get_logger(__name__)

R = TypeVar("R")


class TableState(str, Enum):
    """Freshness of one table in the local snapshot."""

    STALE = "stale"
    SYNCING = "syncing"
    FRESH = "fresh"


@dataclass
class TableTracker:
    """Freshness bookkeeping for one table."""

    state: TableState = TableState.STALE
    # Lowest row shifted by a delete since the last read
    stale_from: int | None = None

    def mark_deleted(self, row_index: int) -> None:
        self.state = TableState.STALE
        if self.stale_from is None or row_index < self.stale_from:
            self.stale_from = row_index

    def mark_fresh(self) -> None:
        self.state = TableState.FRESH
        self.stale_from = None


def employees_from_rows(company: str, rows: list[list[str]]) -> list[Employee]:
    """Decode a company table; rows without an id are skipped but keep their position."""
    return [
        Employee.from_row(row, company, position + FIRST_DATA_ROW)
        for position, row in enumerate(rows)
        if row and str(row[0]).strip()
    ]


def tasks_from_rows(rows: list[list[str]]) -> list[DailyTask]:
    """Decode the task table; rows without an id are skipped but keep their position."""
    return [
        DailyTask.from_row(row, position + FIRST_DATA_ROW)
        for position, row in enumerate(rows)
        if row and str(row[0]).strip()
    ]


class SyncCoordinator:
    """Owns the current snapshot and every positional write to the store.

    Usage:
        coordinator = SyncCoordinator(store)
        snapshot = await coordinator.sync_or_fallback()

        # Same-row update, patched into the snapshot
        await coordinator.update_employee(employee.with_values(visa_stamp="Done"))

        # Delete, followed by a re-read of the table
        await coordinator.delete_employee(employee.company, employee.id)
    """

    def __init__(
        self,
        store: TableStore,
        cache: SnapshotCache | None = None,
        system_tables: Iterable[str] | None = None,
        task_table: str | None = None,
        row_limit: int | None = None,
    ):
        settings = get_settings()
        self.store = store
        self.cache = cache or SnapshotCache()
        self.task_table = task_table or settings.task_table
        self.system_tables = frozenset(system_tables or settings.system_tables) | {
            self.task_table
        }
        self.row_limit = row_limit or settings.read_row_limit

        self._snapshot = Snapshot()
        self._tables: dict[str, TableTracker] = {}
        self._lock = asyncio.Lock()
        self._offline = False

    # === State ===

    @property
    def snapshot(self) -> Snapshot:
        """The current snapshot; replaced wholesale, never mutated."""
        return self._snapshot

    @property
    def offline(self) -> bool:
        """True when the snapshot came from the local cache."""
        return self._offline

    def state(self, table: str) -> TableState:
        return self._tracker(table).state

    def stale_from(self, table: str) -> int | None:
        return self._tracker(table).stale_from

    def _tracker(self, table: str) -> TableTracker:
        return self._tables.setdefault(table, TableTracker())

    def _check_position(self, table: str, row_index: int | None) -> int:
        if row_index is None or row_index < FIRST_DATA_ROW:
            raise InvariantViolation(
                f"Invalid data row {row_index!r} for {table!r}",
                details={"table": table, "row_index": row_index},
            )
        tracker = self._tracker(table)
        if tracker.stale_from is not None and row_index >= tracker.stale_from:
            logger.warning(
                "stale_row_index_refused",
                table=table,
                row_index=row_index,
                stale_from=tracker.stale_from,
            )
            raise StaleRowIndex(table, row_index, tracker.stale_from)
        if tracker.stale_from is None and tracker.state != TableState.FRESH:
            logger.warning(
                "positional_write_on_unsynced_table",
                table=table,
                row_index=row_index,
                state=tracker.state.value,
            )
        return row_index

    async def _write(
        self, table: str, operation: str, call: Callable[[], Awaitable[R]]
    ) -> R:
        try:
            return await call()
        except StoreError as e:
            self._tracker(table).state = TableState.STALE
            logger.error("store_write_failed", table=table, operation=operation, error=str(e))
            raise ExternalWriteFailure(
                f"{operation} on {table!r} failed: {e}", details=e.details
            ) from e

    async def _persist(self) -> None:
        try:
            await self.cache.save(self._snapshot)
        except OSError as e:
            logger.warning("snapshot_cache_write_failed", error=str(e))

    # === Reads ===

    async def full_sync(self) -> Snapshot:
        """Read every company table and the task table into a new snapshot.

        The snapshot is replaced only if every read succeeds.

        Raises:
            ExternalReadFailure: Any read failed; the current snapshot is kept.
        """
        async with self._lock:
            for tracker in self._tables.values():
                tracker.state = TableState.SYNCING
            try:
                tables = await self.store.list_tables()
                await self._ensure_task_table(tables)
                companies = [t for t in tables if t not in self.system_tables]

                employees: list[Employee] = []
                for company in companies:
                    rows = await self.store.read(
                        company, data_range(len(EMPLOYEE_COLUMNS), self.row_limit)
                    )
                    employees.extend(employees_from_rows(company, rows))

                task_rows = await self.store.read(
                    self.task_table, data_range(len(TASK_COLUMNS), self.row_limit)
                )
                tasks = tasks_from_rows(task_rows)
            except StoreError as e:
                for tracker in self._tables.values():
                    tracker.state = TableState.STALE
                logger.error("full_sync_failed", error=str(e))
                raise ExternalReadFailure(f"Sync failed: {e}", details=e.details) from e

            self._snapshot = Snapshot(
                employees=tuple(employees),
                companies=tuple(companies),
                tasks=tuple(tasks),
            )
            self._tables = {table: TableTracker() for table in [*companies, self.task_table]}
            for tracker in self._tables.values():
                tracker.mark_fresh()
            self._offline = False

            await self._persist()

        logger.info(
            "full_sync_completed",
            companies=len(companies),
            employees=len(employees),
            tasks=len(tasks),
        )
        return self._snapshot

    async def load_cached_snapshot(self) -> Snapshot | None:
        """Adopt the last cached snapshot, if any, with every table marked stale."""
        cached = await self.cache.load()
        if cached is None:
            return None

        async with self._lock:
            self._snapshot = cached
            self._tables = {
                table: TableTracker() for table in [*cached.companies, self.task_table]
            }
            self._offline = True

        logger.info(
            "cached_snapshot_loaded",
            synced_at=cached.synced_at.isoformat(),
            employees=len(cached.employees),
        )
        return cached

    async def sync_or_fallback(self) -> Snapshot:
        """Sync, or fall back to the cached snapshot when the store is unreachable.

        Raises:
            ExternalReadFailure: The sync failed and nothing is cached.
        """
        try:
            return await self.full_sync()
        except ExternalReadFailure:
            cached = await self.load_cached_snapshot()
            if cached is None:
                raise
            logger.warning("using_cached_snapshot", synced_at=cached.synced_at.isoformat())
            return cached

    async def refresh_table(self, table: str) -> Snapshot:
        """Re-read a single table and swap its records into the snapshot."""
        async with self._lock:
            return await self._refresh_table(table)

    async def _refresh_table(self, table: str) -> Snapshot:
        tracker = self._tracker(table)
        tracker.state = TableState.SYNCING
        width = len(TASK_COLUMNS) if table == self.task_table else len(EMPLOYEE_COLUMNS)
        try:
            rows = await self.store.read(table, data_range(width, self.row_limit))
        except StoreError as e:
            tracker.state = TableState.STALE
            logger.error("table_refresh_failed", table=table, error=str(e))
            raise ExternalReadFailure(f"Reading {table!r} failed: {e}", details=e.details) from e

        if table == self.task_table:
            self._snapshot = self._snapshot.with_tasks(tasks_from_rows(rows))
        else:
            self._snapshot = self._snapshot.with_company_rows(
                table, employees_from_rows(table, rows)
            )
        tracker.mark_fresh()
        await self._persist()
        logger.debug("table_refreshed", table=table, rows=len(rows))
        return self._snapshot

    async def _reread_after_append(self, table: str) -> bool:
        """Re-read a table after an append.

        The appended row is already stored, so a failed read is not a failed
        write: the table stays STALE and the caller keeps the new record
        without a row position until the next successful read.
        """
        try:
            await self._refresh_table(table)
        except ExternalReadFailure as e:
            logger.warning("append_reread_failed", table=table, error=str(e))
            return False
        return True

    async def ensure_task_table(self) -> None:
        """Create the task table or repair its headers outside a full sync."""
        async with self._lock:

            async def ensure() -> None:
                await self._ensure_task_table(await self.store.list_tables())

            await self._write(self.task_table, "ensure_headers", ensure)

    async def _ensure_task_table(self, tables: list[str]) -> None:
        """Create the task table, or repair its header row."""
        if self.task_table not in tables:
            await self.store.create_table(self.task_table, TASK_HEADERS)
            logger.info("task_table_created", table=self.task_table)
            return

        header = await self.store.read(self.task_table, row_range(1, len(TASK_HEADERS)))
        current = header[0] if header else []
        padded = list(current) + [""] * (len(TASK_HEADERS) - len(current))
        if any(padded[i] != expected for i, expected in enumerate(TASK_HEADERS)):
            await self.store.write_headers(self.task_table, TASK_HEADERS)
            logger.info("task_table_headers_repaired", table=self.task_table)

    # === Employees ===

    def _locate_employee(self, company: str, employee_id: str) -> Employee:
        current = self._snapshot.find_employee(company, employee_id)
        if current is None:
            raise RecordNotFound(
                f"Employee {employee_id!r} not found in {company!r}",
                details={"company": company, "id": employee_id},
            )
        return current

    def resolve_employee(self, employee_name: str, company: str) -> Employee:
        return self._snapshot.resolve_employee(employee_name, company)

    async def append_employee(self, employee: Employee) -> Snapshot:
        """Append a new employee row and re-read its company table."""
        async with self._lock:
            await self._write(
                employee.company,
                "append",
                lambda: self.store.append(employee.company, employee.to_row()),
            )
            self._tracker(employee.company).state = TableState.STALE
            logger.info("employee_appended", company=employee.company, id=employee.id)
            if not await self._reread_after_append(employee.company):
                rows = self._snapshot.employees_in(employee.company)
                self._snapshot = self._snapshot.with_company_rows(
                    employee.company, [*rows, employee.with_values(row_index=None)]
                )
                await self._persist()
            return self._snapshot

    async def update_employee(self, employee: Employee) -> Employee:
        """Overwrite the row of an existing employee and patch the snapshot.

        The row is located by ``(company, id)`` in the current snapshot; the
        ``row_index`` carried by ``employee`` is ignored.

        Raises:
            RecordNotFound: The employee is not in the snapshot.
            StaleRowIndex: Its row was shifted by an unsynced delete.
            ExternalWriteFailure: The store rejected the write.
        """
        async with self._lock:
            current = self._locate_employee(employee.company, employee.id)
            row_index = self._check_position(employee.company, current.row_index)
            await self._write(
                employee.company,
                "update",
                lambda: self.store.update(employee.company, row_index, employee.to_row()),
            )
            patched = employee.with_values(row_index=row_index)
            self._snapshot = self._snapshot.with_employee(patched)
            await self._persist()
            logger.info(
                "employee_updated", company=employee.company, id=employee.id, row_index=row_index
            )
            return patched

    async def delete_employee(self, company: str, employee_id: str) -> Snapshot:
        """Delete one employee row and re-read the table."""
        return await self.delete_employees([(company, employee_id)])

    async def delete_employees(self, keys: Iterable[tuple[str, str]]) -> Snapshot:
        """Delete several employee rows, highest row first within each table.

        Deleting bottom-up means no delete shifts a row still waiting to be
        deleted. Each touched table is re-read afterwards.
        """
        async with self._lock:
            targets: dict[str, list[int]] = {}
            for company, employee_id in keys:
                current = self._locate_employee(company, employee_id)
                row_index = self._check_position(company, current.row_index)
                targets.setdefault(company, []).append(row_index)

            for company, rows in targets.items():
                for row_index in sorted(set(rows), reverse=True):
                    self._check_position(company, row_index)
                    await self._write(
                        company,
                        "delete",
                        lambda c=company, r=row_index: self.store.delete(c, r),
                    )
                    self._tracker(company).mark_deleted(row_index)
                    logger.info("employee_row_deleted", company=company, row_index=row_index)

            for company in targets:
                await self._refresh_table(company)
            return self._snapshot

    # === Tasks ===

    def _require_placed(self, task: DailyTask) -> None:
        if task.row_index is None:
            raise InvariantViolation(
                f"Task {task.id!r} has no known row until {self.task_table!r} is re-read",
                details={"task_id": task.id},
            )

    def _task_row(self, task: DailyTask) -> int | None:
        existing = self._snapshot.find_task(task.id)
        if existing is not None:
            self._require_placed(existing)
            return existing.row_index
        if task.row_index is None:
            return None
        occupant = self._snapshot.task_at(task.row_index)
        if occupant is not None and task.id and occupant.id != task.id:
            raise InvariantViolation(
                f"Row {task.row_index} of {self.task_table!r} holds task {occupant.id!r}",
                details={"row_index": task.row_index, "task_id": task.id},
            )
        return task.row_index

    async def save_task(self, task: DailyTask) -> DailyTask:
        """Write a task: update its row when it has one, append otherwise.

        Returns the task as it now sits in the snapshot.
        """
        async with self._lock:
            row_index = self._task_row(task)
            table = self.task_table

            if row_index is None:
                await self._write(table, "append", lambda: self.store.append(table, task.to_row()))
                self._tracker(table).state = TableState.STALE
                logger.info("task_appended", task_id=task.id, transaction=task.transaction)
                if not await self._reread_after_append(table):
                    self._snapshot = self._snapshot.with_tasks(
                        [*self._snapshot.tasks, replace(task, row_index=None)]
                    )
                    await self._persist()
                return self._snapshot.find_task(task.id) or task

            self._check_position(table, row_index)
            await self._write(
                table, "update", lambda: self.store.update(table, row_index, task.to_row())
            )
            saved = replace(task, row_index=row_index)
            tasks = [t for t in self._snapshot.tasks if t.row_index != row_index]
            tasks.append(saved)
            tasks.sort(key=lambda t: t.row_index or 0)
            self._snapshot = self._snapshot.with_tasks(tasks)
            await self._persist()
            logger.info("task_updated", task_id=task.id, row_index=row_index)
            return saved

    async def delete_task(self, task: DailyTask) -> Snapshot:
        """Delete a task row and re-read the task table."""
        async with self._lock:
            table = self.task_table
            existing = self._snapshot.find_task(task.id)
            if existing is not None:
                self._require_placed(existing)
            row_index = existing.row_index if existing is not None else task.row_index
            if row_index is None:
                raise RecordNotFound(f"Task {task.id!r} not found", details={"id": task.id})
            self._check_position(table, row_index)

            await self._write(table, "delete", lambda: self.store.delete(table, row_index))
            self._tracker(table).mark_deleted(row_index)
            logger.info("task_row_deleted", task_id=task.id, row_index=row_index)
            return await self._refresh_table(table)

    # === Companies ===

    async def create_company(self, name: str) -> Snapshot:
        """Create an empty company table with the employee header row."""
        name = name.strip()
        if not name:
            raise ValidationError("Company name is required")
        if name in self.system_tables or name in self._snapshot.companies:
            raise ValidationError(f"Company {name!r} already exists")

        async with self._lock:
            await self._write(
                name, "create", lambda: self.store.create_table(name, EMPLOYEE_HEADERS)
            )
            self._snapshot = self._snapshot.with_company_rows(name, [])
            self._tracker(name).mark_fresh()
            await self._persist()
        logger.info("company_created", company=name)
        return self._snapshot

    async def delete_company(self, name: str) -> Snapshot:
        """Drop a company table and every employee in it."""
        if name not in self._snapshot.companies:
            raise RecordNotFound(f"Company {name!r} not found", details={"company": name})

        async with self._lock:
            await self._write(name, "drop", lambda: self.store.drop_table(name))
            self._snapshot = self._snapshot.without_company(name)
            self._tables.pop(name, None)
            await self._persist()
        logger.info("company_deleted", company=name)
        return self._snapshot
