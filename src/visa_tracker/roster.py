"""Employee and company maintenance on top of the sync coordinator."""

from collections.abc import Iterable
from datetime import timedelta

import structlog

from visa_tracker.errors import DuplicateEmployee, RecordNotFound, ValidationError
from visa_tracker.schema import Employee, parse_date
from visa_tracker.snapshot import Snapshot
from visa_tracker.sync import SyncCoordinator

logger = structlog.get_logger(__name__)

INSIDE_UAE = "Inside UAE"
VISA_VALIDITY_DAYS = 60


def apply_form_rules(employee: Employee, previous: Employee | None = None) -> Employee:
    """Normalise an employee as the entry form does before saving.

    ``visa_last_day`` is derived from the entry date only when the record is
    new, the entry date changed from ``previous``, or no last day is set, so a
    hand-entered last day survives unrelated edits.

    Raises:
        ValidationError: An Inside UAE employee has an entry permit status
            but no current visa last day.
    """
    changes: dict[str, str] = {}
    if employee.visa_type == INSIDE_UAE:
        if employee.entry_permit_status and not employee.current_visa_last_day:
            raise ValidationError(
                'For Inside UAE, "Current Visa Last Day" must be filled before '
                "setting Entry Permit Status.",
                details={"company": employee.company, "id": employee.id},
            )
    elif employee.current_visa_last_day:
        changes["current_visa_last_day"] = ""

    entry_changed = previous is None or previous.entry_date != employee.entry_date
    entry = parse_date(employee.entry_date)
    if entry is not None and (entry_changed or not employee.visa_last_day):
        changes["visa_last_day"] = (entry + timedelta(days=VISA_VALIDITY_DAYS)).isoformat()

    return employee.with_values(**changes) if changes else employee


def next_employee_id(employees: Iterable[Employee]) -> str:
    """One past the highest numeric id; ids that are not numbers are ignored."""
    highest = 0
    for employee in employees:
        try:
            highest = max(highest, int(str(employee.id).strip()))
        except ValueError:
            continue
    return str(highest + 1)


class EmployeeRoster:
    """Create, edit and remove employees and company tables."""

    def __init__(self, coordinator: SyncCoordinator):
        self.coordinator = coordinator

    @property
    def snapshot(self) -> Snapshot:
        return self.coordinator.snapshot

    def _require_company(self, company: str) -> None:
        if company not in self.snapshot.companies:
            raise RecordNotFound(f"Company {company!r} not found", details={"company": company})

    async def create(self, employee: Employee) -> Employee:
        """Add an employee with the next free id in its company.

        Raises:
            DuplicateEmployee: The company already has an employee with that name.
            ValidationError: The form rules reject the record.
        """
        company = employee.company
        self._require_company(company)
        wanted = employee.employee_name.strip().lower()
        if not wanted:
            raise ValidationError("Employee name is required")
        current = self.snapshot.employees_in(company)
        if any(e.employee_name.strip().lower() == wanted for e in current):
            raise DuplicateEmployee(employee.employee_name, company)

        prepared = apply_form_rules(
            employee.with_values(id=next_employee_id(current), row_index=None)
        )
        snapshot = await self.coordinator.append_employee(prepared)
        logger.info("employee_created", company=company, id=prepared.id)
        return snapshot.find_employee(company, prepared.id) or prepared

    async def update(self, employee: Employee) -> Employee:
        """Overwrite an existing employee located by company and id.

        Raises:
            RecordNotFound: No such employee in the snapshot.
            ValidationError: The form rules reject the record.
        """
        current = self.snapshot.find_employee(employee.company, employee.id)
        if current is None:
            raise RecordNotFound(
                f"Employee {employee.id!r} not found in {employee.company!r}",
                details={"company": employee.company, "id": employee.id},
            )
        return await self.coordinator.update_employee(apply_form_rules(employee, current))

    async def delete(self, company: str, employee_id: str) -> Snapshot:
        return await self.coordinator.delete_employee(company, employee_id)

    async def bulk_delete(self, keys: Iterable[tuple[str, str]]) -> Snapshot:
        """Delete several employees; missing keys fail the whole call before any write."""
        keys = list(keys)
        snapshot = await self.coordinator.delete_employees(keys)
        logger.info("employees_bulk_deleted", count=len(keys))
        return snapshot

    async def bulk_update_status(
        self, keys: Iterable[tuple[str, str]], status: str
    ) -> list[Employee]:
        """Set the entry permit status on each listed employee."""
        updated: list[Employee] = []
        for company, employee_id in keys:
            current = self.snapshot.find_employee(company, employee_id)
            if current is None:
                logger.warning("bulk_status_employee_missing", company=company, id=employee_id)
                continue
            updated.append(
                await self.coordinator.update_employee(
                    current.with_values(entry_permit_status=status)
                )
            )
        logger.info("employees_bulk_status_updated", count=len(updated), status=status)
        return updated

    async def create_company(self, name: str) -> Snapshot:
        return await self.coordinator.create_company(name)

    async def delete_company(self, name: str) -> Snapshot:
        return await self.coordinator.delete_company(name)
