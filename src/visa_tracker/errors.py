"""Exceptions raised by the visa tracker core."""

from typing import Any


class VisaTrackerError(Exception):
    """Base exception for visa tracker errors."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.details = details


class ValidationError(VisaTrackerError):
    """Operator input was rejected; nothing was written."""

    pass


class DuplicateActiveTask(ValidationError):
    """An active task already exists for the same employee and transaction."""

    def __init__(self, employee_name: str, company: str, transaction: str):
        super().__init__(
            "An active task for this transaction already exists.",
            details={
                "employee_name": employee_name,
                "company": company,
                "transaction": transaction,
            },
        )
        self.employee_name = employee_name
        self.company = company
        self.transaction = transaction


class DuplicateEmployee(ValidationError):
    """An employee with the same name already exists in the company."""

    def __init__(self, employee_name: str, company: str):
        super().__init__(f'Employee "{employee_name}" already exists in {company}.')
        self.employee_name = employee_name
        self.company = company


class ExternalReadFailure(VisaTrackerError):
    """Reading from the external store failed; the snapshot is unchanged."""

    pass


class ExternalWriteFailure(VisaTrackerError):
    """Writing to the external store failed; the write is not considered saved."""

    pass


class RecordNotFound(VisaTrackerError):
    """No record with the given key exists in the current snapshot."""

    pass


class EmployeeNotFound(RecordNotFound):
    """No employee matches the given name and company."""

    def __init__(self, employee_name: str, company: str):
        super().__init__(f"Employee {employee_name!r} not found in {company!r}")
        self.employee_name = employee_name
        self.company = company


class AmbiguousEmployeeReference(VisaTrackerError):
    """More than one employee in a company shares the referenced name."""

    def __init__(self, employee_name: str, company: str, matches: int):
        super().__init__(
            f"{matches} employees named {employee_name!r} in {company!r}"
        )
        self.employee_name = employee_name
        self.company = company
        self.matches = matches


class InvariantViolation(VisaTrackerError):
    """An operation would break a storage invariant; resync before retrying."""

    pass


class StaleRowIndex(InvariantViolation):
    """A positional write targeted a row shifted by an unsynced delete."""

    def __init__(self, table: str, row_index: int, stale_from: int):
        super().__init__(
            f"Row {row_index} of {table!r} is stale after a delete at row {stale_from}",
            details={"table": table, "row_index": row_index, "stale_from": stale_from},
        )
        self.table = table
        self.row_index = row_index
        self.stale_from = stale_from
