"""Tests for dashboard reports."""

from datetime import date

from visa_tracker.reports import (
    dashboard,
    filter_employees,
    upcoming_expiries,
    workflow_breakdown,
)
from visa_tracker.schema import ActionPriority, DailyTask, Employee, TaskCategory, TaskStatus
from visa_tracker.snapshot import Snapshot

TODAY = date(2024, 6, 1)


def sample_snapshot() -> Snapshot:
    return Snapshot(
        employees=(
            Employee(id="10", company="Acme", employee_name="Zed", entry_permit_status="Approved"),
            Employee(
                id="2",
                company="Acme",
                employee_name="Amy",
                visa_last_day="2024-06-05",
                current_visa_last_day="2024-06-25",
            ),
            Employee(
                id="3",
                company="Gulf",
                employee_name="Bob",
                entry_permit_status="Pending",
                visa_last_day="2024-08-01",
            ),
        ),
        companies=("Acme", "Gulf", "Empty Co"),
        tasks=(
            DailyTask("Zed", "Acme", "Contract", category=TaskCategory.VISA_PROCESS),
            DailyTask("Amy", "Acme", "Visa Stamp", category=TaskCategory.VISA_RENEW),
            DailyTask("Amy", "Acme", "EID Application", category=TaskCategory.VISA_RENEW),
            DailyTask("Bob", "Gulf", "Contract", status=TaskStatus.COMPLETED),
            DailyTask("Bob", "Gulf", "Other thing", category=TaskCategory.OTHER),
        ),
    )


class TestDashboard:
    """Tests for headline counts."""

    def test_counts(self):
        stats = dashboard(sample_snapshot(), TODAY)

        assert stats.total_employees == 3
        assert stats.companies == 3
        assert stats.active == 1
        # Zed: entry date; Amy: visa expiry; Bob: pending entry permit
        assert stats.pending_actions == 3


class TestWorkflowBreakdown:
    """Tests for active workflows per company."""

    def test_counts_active_tasks_by_category(self):
        breakdown = workflow_breakdown(sample_snapshot())

        assert breakdown == {
            "Acme": {TaskCategory.VISA_PROCESS: 1, TaskCategory.VISA_RENEW: 2},
            "Gulf": {TaskCategory.OTHER: 1},
        }


class TestUpcomingExpiries:
    """Tests for the expiry window."""

    def test_window_and_priority(self):
        expiries = upcoming_expiries(sample_snapshot(), TODAY)

        assert [(x.employee_name, x.kind, x.priority) for x in expiries] == [
            ("Amy", "Visa (New)", ActionPriority.HIGH),
            ("Amy", "Visa (Current)", ActionPriority.MEDIUM),
        ]

    def test_wider_window(self):
        expiries = upcoming_expiries(sample_snapshot(), TODAY, window=61)
        assert [x.employee_name for x in expiries] == ["Amy", "Amy", "Bob"]
        assert expiries[-1].date == date(2024, 8, 1)


class TestFilterEmployees:
    """Tests for search, filter and sort."""

    def test_ids_sort_numerically(self):
        employees = sample_snapshot().employees
        assert [e.id for e in filter_employees(employees)] == ["2", "3", "10"]
        assert [e.id for e in filter_employees(employees, descending=True)] == ["10", "3", "2"]

    def test_query_matches_name_or_id(self):
        employees = sample_snapshot().employees
        assert [e.employee_name for e in filter_employees(employees, "AM")] == ["Amy"]
        assert [e.employee_name for e in filter_employees(employees, "10")] == ["Zed"]

    def test_company_and_status(self):
        employees = sample_snapshot().employees

        assert [e.id for e in filter_employees(employees, company="Acme")] == ["2", "10"]
        assert [e.id for e in filter_employees(employees, status="Pending")] == ["3"]
        assert len(filter_employees(employees, status="All")) == 3

    def test_sort_by_text_column(self):
        employees = sample_snapshot().employees
        names = [e.employee_name for e in filter_employees(employees, sort="employee_name")]
        assert names == ["Amy", "Bob", "Zed"]
