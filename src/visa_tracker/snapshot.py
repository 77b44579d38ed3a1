"""Immutable view of the store at the time of the last sync."""

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from visa_tracker.errors import AmbiguousEmployeeReference, EmployeeNotFound
from visa_tracker.schema import DailyTask, Employee


@dataclass(frozen=True)
class Snapshot:
    """Employees, companies and tasks as last read from the store.

    A snapshot is never mutated; writers derive a new one with the
    ``with_*`` helpers and swap it in.
    """

    employees: tuple[Employee, ...] = ()
    companies: tuple[str, ...] = ()
    tasks: tuple[DailyTask, ...] = ()
    synced_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    # === Lookups ===

    def employees_in(self, company: str) -> list[Employee]:
        return [e for e in self.employees if e.company == company]

    def find_employee(self, company: str, employee_id: str) -> Employee | None:
        for employee in self.employees:
            if employee.company == company and str(employee.id) == str(employee_id):
                return employee
        return None

    def employees_named(self, employee_name: str, company: str | None = None) -> list[Employee]:
        return [
            e
            for e in self.employees
            if e.employee_name == employee_name and (company is None or e.company == company)
        ]

    def resolve_employee(self, employee_name: str, company: str) -> Employee:
        """Look up an employee by display name within a company.

        Names are not keys; the lookup is a convenience for linking tasks.

        Raises:
            EmployeeNotFound: No employee matches.
            AmbiguousEmployeeReference: Several employees share the name.
        """
        matches = self.employees_named(employee_name, company)
        if not matches:
            raise EmployeeNotFound(employee_name, company)
        if len(matches) > 1:
            raise AmbiguousEmployeeReference(employee_name, company, len(matches))
        return matches[0]

    def find_task(self, task_id: str) -> DailyTask | None:
        if not task_id:
            return None
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def task_at(self, row_index: int | None) -> DailyTask | None:
        if row_index is None:
            return None
        return next((t for t in self.tasks if t.row_index == row_index), None)

    def active_tasks(self) -> list[DailyTask]:
        return [t for t in self.tasks if t.is_active]

    # === Derivation ===

    def with_employee(self, employee: Employee) -> "Snapshot":
        """Replace one employee in place, keeping its position."""
        employees = tuple(
            employee if e.key == employee.key else e for e in self.employees
        )
        return replace(self, employees=employees)

    def with_company_rows(self, company: str, rows: Iterable[Employee]) -> "Snapshot":
        """Swap every employee of one company for a freshly read set."""
        kept = [e for e in self.employees if e.company != company]
        companies = self.companies if company in self.companies else self.companies + (company,)
        return replace(self, employees=tuple(kept) + tuple(rows), companies=companies)

    def without_company(self, company: str) -> "Snapshot":
        return replace(
            self,
            employees=tuple(e for e in self.employees if e.company != company),
            companies=tuple(c for c in self.companies if c != company),
        )

    def with_tasks(self, tasks: Iterable[DailyTask]) -> "Snapshot":
        return replace(self, tasks=tuple(tasks))

    # === Serialization ===

    def to_dict(self) -> dict[str, Any]:
        return {
            "employees": [e.to_dict() for e in self.employees],
            "companies": list(self.companies),
            "tasks": [t.to_dict() for t in self.tasks],
            "timestamp": self.synced_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Snapshot":
        timestamp = data.get("timestamp")
        return cls(
            employees=tuple(Employee.from_dict(e) for e in data.get("employees") or []),
            companies=tuple(data.get("companies") or []),
            tasks=tuple(DailyTask.from_dict(t) for t in data.get("tasks") or []),
            synced_at=datetime.fromisoformat(timestamp) if timestamp else datetime.now(UTC),
        )
