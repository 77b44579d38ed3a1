"""Tests for the action inference rules."""

from datetime import date, datetime, timedelta

from visa_tracker.inference import (
    collect_actions,
    compute_actions,
    days_until,
    field_status,
    sort_actions,
    status_for_action,
    suggest_status,
)
from visa_tracker.schema import Action, ActionPriority, ActionType, Employee, TaskStatus

TODAY = date(2024, 6, 1)


def make_employee(**values) -> Employee:
    return Employee(id=values.pop("id", "1"), company=values.pop("company", "Acme"), **values)


def expiry_actions(employee: Employee) -> list[Action]:
    return [a for a in compute_actions(employee, TODAY) if a.type == ActionType.EXPIRY]


class TestExpiryRule:
    """Tests for the visa expiry rule."""

    def test_tomorrow_is_high(self):
        employee = make_employee(visa_last_day=(TODAY + timedelta(days=1)).isoformat())
        actions = expiry_actions(employee)

        assert len(actions) == 1
        assert actions[0].label == "Visa Expiry"
        assert actions[0].priority == ActionPriority.HIGH
        assert actions[0].value == "Expires in 1 days"

    def test_yesterday_is_critical(self):
        employee = make_employee(visa_last_day=(TODAY - timedelta(days=1)).isoformat())
        actions = expiry_actions(employee)

        assert len(actions) == 1
        assert actions[0].label == "Visa Expired"
        assert actions[0].priority == ActionPriority.CRITICAL
        assert actions[0].value == "Expired 1 days ago"

    def test_beyond_window_has_no_action(self):
        employee = make_employee(visa_last_day=(TODAY + timedelta(days=61)).isoformat())
        assert expiry_actions(employee) == []

    def test_thirty_days_or_more_is_medium(self):
        employee = make_employee(visa_last_day=(TODAY + timedelta(days=30)).isoformat())
        assert expiry_actions(employee)[0].priority == ActionPriority.MEDIUM

    def test_today_counts_as_expired(self):
        employee = make_employee(visa_last_day=TODAY.isoformat())
        actions = expiry_actions(employee)
        assert actions[0].priority == ActionPriority.CRITICAL
        assert actions[0].value == "Expired 0 days ago"

    def test_unparseable_date_is_ignored(self):
        assert expiry_actions(make_employee(visa_last_day="next month")) == []

    def test_datetime_today_rounds_up(self):
        now = datetime(2024, 6, 1, 15, 0)
        assert days_until(date(2024, 6, 3), now) == 2
        assert days_until(date(2024, 6, 1), now) == 0


class TestPredictionRules:
    """Tests for the process prediction rules."""

    def test_approved_without_entry_date_only_predicts_entry(self):
        employee = make_employee(
            entry_permit_status="Approved",
            entry_date="",
            medical_application="",
            eid_application="",
            visa_stamp="",
        )

        assert compute_actions(employee, TODAY) == [
            Action("Entry Date", "Pending Entry", ActionType.PREDICTION, ActionPriority.HIGH)
        ]

    def test_entered_employee_needs_medical(self):
        employee = make_employee(
            entry_permit_status="Approved",
            entry_date="2024-05-20",
            medical_application="Not Started",
        )
        actions = compute_actions(employee, TODAY)

        assert [a.label for a in actions] == ["Medical Application"]
        assert actions[0].priority == ActionPriority.HIGH

    def test_medical_applied_waits_for_result(self):
        employee = make_employee(medical_application="Completed", medical_result="Pending")
        labels = [a.label for a in compute_actions(employee, TODAY)]
        assert labels == ["Medical Result"]

    def test_fit_leads_to_eid(self):
        employee = make_employee(medical_result="Pass")
        actions = compute_actions(employee, TODAY)
        assert [(a.label, a.priority) for a in actions] == [
            ("EID Application", ActionPriority.HIGH)
        ]

    def test_eid_and_fit_lead_to_stamp(self):
        employee = make_employee(medical_result="Fit", eid_application="Submitted")
        labels = [a.label for a in compute_actions(employee, TODAY)]
        assert labels == ["Visa Stamp"]

    def test_finished_employee_has_no_actions(self):
        employee = make_employee(
            entry_permit_status="Approved",
            entry_date="2024-01-10",
            medical_application="Completed",
            medical_result="Fit",
            eid_application="Done",
            visa_stamp="Done",
        )
        assert compute_actions(employee, TODAY) == []


class TestPendingSweep:
    """Tests for the explicit pending sweep."""

    def test_marks_each_pending_field(self):
        employee = make_employee(tawjeeh_submission="Under Process", iloe_number="pending")
        actions = compute_actions(employee, TODAY)

        assert [(a.label, a.value, a.type) for a in actions] == [
            ("Tawjeeh Submission", "Under Process", ActionType.PENDING),
            ("ILOE Number", "pending", ActionType.PENDING),
        ]

    def test_done_markers_win(self):
        employee = make_employee(visa_stamp="Applied - Approved")
        assert compute_actions(employee, TODAY) == []

    def test_label_already_predicted_is_not_repeated(self):
        employee = make_employee(medical_application="Applied", medical_result="Pending")
        labels = [a.label for a in compute_actions(employee, TODAY)]

        assert labels.count("Medical Result") == 1
        assert labels == ["Medical Result", "Medical Application"]


class TestOrdering:
    """Tests for priority ordering."""

    def test_sort_is_stable_within_priority(self):
        actions = [
            Action("a", "", ActionType.PENDING, ActionPriority.MEDIUM),
            Action("b", "", ActionType.PREDICTION, ActionPriority.HIGH),
            Action("c", "", ActionType.PENDING, ActionPriority.MEDIUM),
            Action("d", "", ActionType.EXPIRY, ActionPriority.CRITICAL),
            Action("e", "", ActionType.PENDING, ActionPriority.LOW),
        ]
        assert [a.label for a in sort_actions(actions)] == ["d", "b", "a", "c", "e"]

    def test_collect_across_employees(self):
        employees = [
            make_employee(id="1", employee_name="A", tawjeeh_submission="Pending"),
            make_employee(
                id="2",
                employee_name="B",
                visa_last_day=(TODAY - timedelta(days=3)).isoformat(),
            ),
        ]
        collected = collect_actions(employees, TODAY)

        assert [(c.employee_name, c.priority) for c in collected] == [
            ("B", ActionPriority.CRITICAL),
            ("A", ActionPriority.MEDIUM),
        ]
        assert collected[0].employee_id == "2"


class TestStatusSuggestions:
    """Tests for task status suggestions."""

    def test_suggest_status(self):
        assert suggest_status("Under Process") == TaskStatus.IN_PROGRESS
        assert suggest_status("Fit") == TaskStatus.COMPLETED
        assert suggest_status("To Do") == TaskStatus.PENDING

    def test_status_for_action(self):
        pending = Action("Visa Stamp", "Pending", ActionType.PENDING, ActionPriority.MEDIUM)
        predicted = Action("Visa Stamp", "To Do", ActionType.PREDICTION, ActionPriority.MEDIUM)

        assert status_for_action(pending) == TaskStatus.IN_PROGRESS
        assert status_for_action(predicted) == TaskStatus.PENDING

    def test_field_status(self):
        employee = make_employee(medical_result="Fit", visa_stamp="Pending")

        assert field_status(employee, "Medical Result") == TaskStatus.COMPLETED
        assert field_status(employee, "Visa Stamp") == TaskStatus.PENDING
        assert field_status(employee, "Contract") is None
        assert field_status(employee, "General") is None
