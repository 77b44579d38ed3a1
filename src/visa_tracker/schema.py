"""Record layouts for employees, daily tasks and derived actions.

Employees live in one table per company and daily tasks in a single task
table. Both are addressed by physical row: row 1 holds the headers and data
starts at row 2, so a record read at position ``i`` has ``row_index = i + 2``.
The column order below is the storage format; reordering it is a breaking
change for every existing spreadsheet.

Employee status fields are open strings. Operators type free text into them
("Pending", "Under Process", "Applied 12/3"...) and the workflow rules match
them by exact value or substring. Task category and status are closed enums.
"""

import re
from dataclasses import asdict, dataclass, fields, replace
from datetime import date, datetime
from enum import Enum
from typing import Any

HEADER_ROWS = 1
FIRST_DATA_ROW = HEADER_ROWS + 1


class TaskCategory(str, Enum):
    """Category of a daily task."""

    VISA_PROCESS = "Visa Process"
    VISA_RENEW = "Visa Renew"
    VISA_DONE = "Visa Done"
    CANCELLATION = "Cancellation"
    OTHER = "Other"

    @classmethod
    def parse(cls, value: str | None) -> "TaskCategory":
        """Map stored text to a category, falling back to OTHER."""
        text = (value or "").strip()
        if not text:
            return cls.VISA_PROCESS
        key = _squash(text)
        for member in cls:
            if _squash(member.value) == key:
                return member
        return cls.OTHER


class TaskStatus(str, Enum):
    """Status of a daily task."""

    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

    @classmethod
    def parse(cls, value: str | None) -> "TaskStatus":
        """Map stored text to a status.

        Unrecognised text is read as PENDING so the task still counts as
        active for the uniqueness check.
        """
        key = _squash(value or "")
        for member in cls:
            if _squash(member.value) == key:
                return member
        if key == "canceled":
            return cls.CANCELLED
        return cls.PENDING

    @property
    def is_active(self) -> bool:
        return self not in (TaskStatus.COMPLETED, TaskStatus.CANCELLED)


class ActionType(str, Enum):
    """Kind of derived action."""

    PREDICTION = "prediction"
    EXPIRY = "expiry"
    PENDING = "pending"


class ActionPriority(str, Enum):
    """Urgency of a derived action, most urgent first."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return PRIORITY_RANK[self]


PRIORITY_RANK: dict[ActionPriority, int] = {
    ActionPriority.CRITICAL: 0,
    ActionPriority.HIGH: 1,
    ActionPriority.MEDIUM: 2,
    ActionPriority.LOW: 3,
}


def _squash(text: str) -> str:
    return re.sub(r"[\s_-]+", "", text).lower()


# =============================================================================
# WORKFLOW FIELDS
# =============================================================================

# Employee fields that participate in the workflow, keyed by attribute name.
WORKFLOW_FIELD_MAP: dict[str, str] = {
    "contract": "Contract",
    "entry_permit_status": "Entry Permit",
    "entry_date": "Entry Date",
    "medical_application": "Medical Application",
    "medical_result": "Medical Result",
    "eid_application": "EID Application",
    "eid_appointment": "EID Appointment",
    "tawjeeh_submission": "Tawjeeh Submission",
    "visa_stamp": "Visa Stamp",
    "labor_card_number": "Labor Card",
    "iloe_number": "ILOE Number",
}

# Step succession for the onboarding process.
PROCESS_ORDER: tuple[str, ...] = (
    "contract",
    "entry_permit_status",
    "entry_date",
    "medical_application",
    "medical_result",
    "eid_application",
    "visa_stamp",
    "labor_card_number",
)

_LABEL_TO_KEY = {label: key for key, label in WORKFLOW_FIELD_MAP.items()}


def field_for_label(label: str) -> str | None:
    """Return the employee attribute behind a workflow label."""
    return _LABEL_TO_KEY.get(label)


def label_for_field(key: str) -> str:
    """Return the workflow label of an attribute, or the attribute itself."""
    return WORKFLOW_FIELD_MAP.get(key, key)


# =============================================================================
# RECORDS
# =============================================================================

# Column order of a company table (A:Q).
EMPLOYEE_COLUMNS: tuple[str, ...] = (
    "id",
    "employee_name",
    "profession",
    "contract",
    "entry_permit_status",
    "entry_date",
    "visa_last_day",
    "medical_application",
    "medical_result",
    "tawjeeh_submission",
    "iloe_number",
    "labor_card_number",
    "eid_application",
    "eid_appointment",
    "visa_stamp",
    "visa_type",
    "current_visa_last_day",
)

EMPLOYEE_HEADERS: tuple[str, ...] = (
    "ID",
    "Employee Name",
    "Profession",
    "Contract",
    "Entry Permit Status",
    "Entry Date",
    "Visa Expiry Date",
    "Medical Application",
    "Medical Result",
    "Tawjeeh Submission",
    "ILOE Number",
    "Labor Card Number",
    "EID Application",
    "EID Appointment",
    "Visa Stamp",
    "Visa Type",
    "Current Visa Last Day",
)

# Column order of the task table (A:J).
TASK_COLUMNS: tuple[str, ...] = (
    "id",
    "date",
    "employee_name",
    "company",
    "category",
    "transaction",
    "status",
    "notes",
    "sent_by",
    "done_by",
)

TASK_HEADERS: tuple[str, ...] = (
    "ID",
    "Date",
    "Employee Name",
    "Company",
    "Category",
    "Transaction",
    "Status",
    "Notes",
    "Sent By",
    "Done By",
)


def _cell(row: list[Any], position: int) -> str:
    if position >= len(row) or row[position] is None:
        return ""
    return str(row[position])


@dataclass(frozen=True)
class Employee:
    """One employee row of a company table."""

    id: str
    company: str
    employee_name: str = ""
    profession: str = ""
    contract: str = ""
    visa_type: str = ""
    entry_permit_status: str = ""
    entry_date: str = ""
    visa_last_day: str = ""
    medical_application: str = ""
    medical_result: str = ""
    tawjeeh_submission: str = ""
    iloe_number: str = ""
    labor_card_number: str = ""
    eid_application: str = ""
    eid_appointment: str = ""
    visa_stamp: str = ""
    current_visa_last_day: str = ""
    row_index: int | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.company, str(self.id))

    def value_of(self, field_name: str) -> str:
        return str(getattr(self, field_name) or "")

    def with_values(self, **changes: Any) -> "Employee":
        return replace(self, **changes)

    def to_row(self) -> list[str]:
        return [self.value_of(name) for name in EMPLOYEE_COLUMNS]

    @classmethod
    def from_row(cls, row: list[Any], company: str, row_index: int) -> "Employee":
        values = {name: _cell(row, i) for i, name in enumerate(EMPLOYEE_COLUMNS)}
        return cls(company=company, row_index=row_index, **values)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Employee":
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})


@dataclass(frozen=True)
class DailyTask:
    """One follow-up entry of the task table."""

    employee_name: str
    company: str
    transaction: str
    id: str = ""
    date: str = ""
    category: TaskCategory = TaskCategory.VISA_PROCESS
    status: TaskStatus = TaskStatus.PENDING
    notes: str = ""
    sent_by: str = ""
    done_by: str = ""
    row_index: int | None = None

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    @property
    def identity(self) -> tuple[str, str, str]:
        """Fields that must be unique among active tasks."""
        return (self.employee_name, self.company, self.transaction)

    def to_row(self) -> list[str]:
        row = []
        for name in TASK_COLUMNS:
            value = getattr(self, name)
            row.append(value.value if isinstance(value, Enum) else str(value or ""))
        return row

    @classmethod
    def from_row(cls, row: list[Any], row_index: int) -> "DailyTask":
        values = {name: _cell(row, i) for i, name in enumerate(TASK_COLUMNS)}
        return cls(
            id=values["id"],
            date=values["date"],
            employee_name=values["employee_name"],
            company=values["company"],
            category=TaskCategory.parse(values["category"]),
            transaction=values["transaction"] or values["category"],
            status=TaskStatus.parse(values["status"]),
            notes=values["notes"],
            sent_by=values["sent_by"],
            done_by=values["done_by"],
            row_index=row_index,
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["category"] = self.category.value
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DailyTask":
        names = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in names}
        values["category"] = TaskCategory.parse(values.get("category"))
        values["status"] = TaskStatus.parse(values.get("status"))
        return cls(**values)


@dataclass(frozen=True)
class Action:
    """A derived recommendation that an employee field needs attention."""

    label: str
    value: str
    type: ActionType
    priority: ActionPriority


# =============================================================================
# DATES
# =============================================================================

_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%Y/%m/%d", "%d-%b-%Y")


def parse_date(value: str | None) -> date | None:
    """Parse a date cell as written by the spreadsheet or the forms.

    Returns None for empty or unrecognised text.
    """
    text = (value or "").strip()
    if not text:
        return None
    # Cells holding a full timestamp still count as the day they name
    text = text.split("T", 1)[0].split(" ", 1)[0]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None
