"""Dashboard figures derived from a snapshot."""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta

from visa_tracker.inference import compute_actions
from visa_tracker.schema import ActionPriority, Employee, TaskCategory, parse_date
from visa_tracker.snapshot import Snapshot

EXPIRY_REPORT_WINDOW_DAYS = 30
EXPIRY_URGENT_DAYS = 7


@dataclass(frozen=True)
class DashboardStats:
    """Headline counts shown on the dashboard."""

    total_employees: int
    companies: int
    active: int
    pending_actions: int


@dataclass(frozen=True)
class Expiry:
    """A visa ending inside the report window."""

    employee_name: str
    company: str
    kind: str
    date: date
    priority: ActionPriority


def dashboard(snapshot: Snapshot, today: date) -> DashboardStats:
    """Count employees, companies, approved permits and outstanding actions."""
    return DashboardStats(
        total_employees=len(snapshot.employees),
        companies=len(snapshot.companies),
        active=sum(1 for e in snapshot.employees if e.entry_permit_status == "Approved"),
        pending_actions=sum(len(compute_actions(e, today)) for e in snapshot.employees),
    )


def workflow_breakdown(snapshot: Snapshot) -> dict[str, dict[TaskCategory, int]]:
    """Active task counts per company by category.

    Companies without active tasks are left out; categories with no tasks are
    omitted from a company's counts.
    """
    breakdown: dict[str, dict[TaskCategory, int]] = {}
    for company in snapshot.companies:
        counts: dict[TaskCategory, int] = {}
        for task in snapshot.tasks:
            if task.company == company and task.is_active:
                counts[task.category] = counts.get(task.category, 0) + 1
        if counts:
            breakdown[company] = {c: counts[c] for c in TaskCategory if c in counts}
    return breakdown


def upcoming_expiries(
    snapshot: Snapshot, today: date, window: int = EXPIRY_REPORT_WINDOW_DAYS
) -> list[Expiry]:
    """Visas ending between today and ``today + window`` days, soonest first."""
    horizon = today + timedelta(days=window)
    urgent = today + timedelta(days=EXPIRY_URGENT_DAYS)
    expiries: list[Expiry] = []
    for employee in snapshot.employees:
        for kind, value in (
            ("Visa (New)", employee.visa_last_day),
            ("Visa (Current)", employee.current_visa_last_day),
        ):
            ends = parse_date(value)
            if ends is None or not today <= ends <= horizon:
                continue
            priority = ActionPriority.HIGH if ends < urgent else ActionPriority.MEDIUM
            expiries.append(Expiry(employee.employee_name, employee.company, kind, ends, priority))
    expiries.sort(key=lambda x: x.date)
    return expiries


def _numeric_id(employee: Employee) -> int:
    try:
        return int(str(employee.id).strip())
    except ValueError:
        return 0


def filter_employees(
    employees: Iterable[Employee],
    query: str = "",
    company: str | None = None,
    status: str | None = None,
    sort: str = "id",
    descending: bool = False,
) -> list[Employee]:
    """Search, filter and sort employees the way the roster table does.

    ``query`` matches a name case-insensitively or an id as a substring;
    ``status`` matches the entry permit status exactly ("All" disables it).
    Ids sort numerically, every other column as text.
    """
    q = query.strip().lower()
    matched = [
        e
        for e in employees
        if (not q or q in e.employee_name.lower() or q in str(e.id))
        and (not company or e.company == company)
        and (not status or status == "All" or e.entry_permit_status == status)
    ]
    if sort == "id":
        matched.sort(key=_numeric_id, reverse=descending)
    else:
        matched.sort(key=lambda e: e.value_of(sort).lower(), reverse=descending)
    return matched
