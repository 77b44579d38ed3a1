"""Rule-based inference of outstanding actions per employee.

Each employee snapshot is run through a fixed sequence of rules:

1. Visa expiry (expiring within 60 days, or already expired)
2. Entry permit approved -> entry date, then medical application
3. Medical applied -> medical result
4. Medical fit -> EID application
5. EID applied and fit -> visa stamp
6. Any workflow field explicitly marked pending/in process

Rules never perform I/O, so the same employee and day always produce the
same list.
"""

import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from typing import TypeVar

from visa_tracker.schema import (
    PRIORITY_RANK,
    Action,
    ActionPriority,
    ActionType,
    Employee,
    TaskStatus,
    field_for_label,
    parse_date,
)

EXPIRY_WINDOW_DAYS = 60
EXPIRY_HIGH_PRIORITY_DAYS = 30

NOT_STARTED = "Not Started"

# Fields swept for explicit pending statuses, in emission order.
PENDING_SWEEP_FIELDS: tuple[tuple[str, str], ...] = (
    ("entry_permit_status", "Entry Permit"),
    ("medical_application", "Medical Application"),
    ("medical_result", "Medical Result"),
    ("tawjeeh_submission", "Tawjeeh Submission"),
    ("eid_application", "EID Application"),
    ("eid_appointment", "EID Appointment"),
    ("visa_stamp", "Visa Stamp"),
    ("labor_card_number", "Labor Card"),
    ("iloe_number", "ILOE Number"),
)

DONE_MARKERS = ("approved", "completed", "fit", "done")
PENDING_MARKERS = ("pending", "process", "applied")


@dataclass(frozen=True)
class EmployeeAction:
    """An action tagged with the employee it belongs to."""

    action: Action
    employee_name: str
    company: str
    employee_id: str

    @property
    def priority(self) -> ActionPriority:
        return self.action.priority


T = TypeVar("T", Action, EmployeeAction)


def _not_started(value: str) -> bool:
    return not value or value == NOT_STARTED


def days_until(target: date, today: date | datetime) -> int:
    """Whole days from today until target, rounded up."""
    if isinstance(today, datetime):
        delta = datetime.combine(target, datetime.min.time(), tzinfo=today.tzinfo) - today
        return math.ceil(delta.total_seconds() / 86400)
    return (target - today).days


def _expiry_actions(employee: Employee, today: date | datetime) -> list[Action]:
    expiry = parse_date(employee.visa_last_day)
    if expiry is None:
        return []

    days_left = days_until(expiry, today)
    if 0 < days_left <= EXPIRY_WINDOW_DAYS:
        priority = (
            ActionPriority.HIGH
            if days_left < EXPIRY_HIGH_PRIORITY_DAYS
            else ActionPriority.MEDIUM
        )
        return [
            Action("Visa Expiry", f"Expires in {days_left} days", ActionType.EXPIRY, priority)
        ]
    if days_left <= 0:
        return [
            Action(
                "Visa Expired",
                f"Expired {abs(days_left)} days ago",
                ActionType.EXPIRY,
                ActionPriority.CRITICAL,
            )
        ]
    return []


def _prediction_actions(employee: Employee) -> list[Action]:
    actions: list[Action] = []

    if employee.entry_permit_status == "Approved":
        if not employee.entry_date:
            actions.append(
                Action("Entry Date", "Pending Entry", ActionType.PREDICTION, ActionPriority.HIGH)
            )
        elif _not_started(employee.medical_application):
            actions.append(
                Action("Medical Application", "To Do", ActionType.PREDICTION, ActionPriority.HIGH)
            )

    if employee.medical_application in ("Completed", "Applied"):
        if not employee.medical_result or employee.medical_result == "Pending":
            actions.append(
                Action(
                    "Medical Result",
                    "Awaiting Result",
                    ActionType.PREDICTION,
                    ActionPriority.MEDIUM,
                )
            )

    if employee.medical_result in ("Fit", "Pass") and _not_started(employee.eid_application):
        actions.append(
            Action("EID Application", "To Do", ActionType.PREDICTION, ActionPriority.HIGH)
        )

    if (
        employee.eid_application
        and employee.medical_result == "Fit"
        and _not_started(employee.visa_stamp)
    ):
        actions.append(
            Action("Visa Stamp", "To Do", ActionType.PREDICTION, ActionPriority.MEDIUM)
        )

    return actions


def _pending_actions(employee: Employee, already: list[Action]) -> list[Action]:
    seen = {action.label for action in already}
    actions: list[Action] = []
    for key, label in PENDING_SWEEP_FIELDS:
        raw = employee.value_of(key)
        lowered = raw.lower()
        if any(marker in lowered for marker in DONE_MARKERS):
            continue
        if any(marker in lowered for marker in PENDING_MARKERS) and label not in seen:
            actions.append(Action(label, raw, ActionType.PENDING, ActionPriority.MEDIUM))
            seen.add(label)
    return actions


def compute_actions(employee: Employee, today: date | datetime) -> list[Action]:
    """Derive the ordered list of outstanding actions for one employee."""
    actions = _expiry_actions(employee, today)
    actions.extend(_prediction_actions(employee))
    actions.extend(_pending_actions(employee, actions))
    return actions


def _rank(priority: ActionPriority | str) -> int:
    try:
        return PRIORITY_RANK[ActionPriority(priority)]
    except ValueError:
        return 99


def sort_actions(actions: Iterable[T]) -> list[T]:
    """Order actions by priority, keeping the original order within a priority."""
    return sorted(actions, key=lambda item: _rank(item.priority))


def collect_actions(
    employees: Iterable[Employee], today: date | datetime
) -> list[EmployeeAction]:
    """Run the rules over many employees and return one priority-ordered list."""
    collected = [
        EmployeeAction(
            action=action,
            employee_name=employee.employee_name,
            company=employee.company,
            employee_id=employee.id,
        )
        for employee in employees
        for action in compute_actions(employee, today)
    ]
    return sort_actions(collected)


# =============================================================================
# TASK STATUS SUGGESTIONS
# =============================================================================


def suggest_status(value: str) -> TaskStatus:
    """Suggest a task status from an action value or field text."""
    lowered = (value or "").lower()
    if "process" in lowered or "applied" in lowered:
        return TaskStatus.IN_PROGRESS
    if "done" in lowered or "fit" in lowered or "approved" in lowered:
        return TaskStatus.COMPLETED
    return TaskStatus.PENDING


def status_for_action(action: Action) -> TaskStatus:
    """Initial status for a task raised from an action."""
    if action.type == ActionType.PENDING:
        return TaskStatus.IN_PROGRESS
    return TaskStatus.PENDING


def field_status(employee: Employee, label: str) -> TaskStatus | None:
    """Suggest a status from the current value of the field behind a label."""
    key = field_for_label(label)
    if key is None:
        return None
    lowered = employee.value_of(key).lower()
    if "pending" in lowered:
        return TaskStatus.PENDING
    if "process" in lowered or "applied" in lowered:
        return TaskStatus.IN_PROGRESS
    if "done" in lowered or "fit" in lowered or "approved" in lowered:
        return TaskStatus.COMPLETED
    return None
