"""Tests for process progression."""

from datetime import date

import pytest

from visa_tracker.automaton import (
    SEED_VALUE,
    apply_completion,
    is_status_field,
    next_step,
    suggested_value,
)
from visa_tracker.schema import Employee


def approved_employee(**values) -> Employee:
    return Employee(id="1", company="Acme", entry_permit_status="Approved", **values)


class TestNextStep:
    """Tests for successor selection."""

    def test_entry_date_seeds_empty_medical(self):
        step = next_step("Entry Date", approved_employee(entry_date="2024-06-01"))

        assert step is not None
        assert step.next_key == "medical_application"
        assert step.next_label == "Medical Application"
        assert step.should_seed

    def test_filled_successor_is_not_seeded(self):
        step = next_step("Entry Date", approved_employee(medical_application="Applied"))
        assert step is not None
        assert not step.should_seed

    def test_date_successor_is_not_seeded(self):
        step = next_step("Entry Permit", approved_employee())
        assert step is not None
        assert step.next_key == "entry_date"
        assert not step.should_seed

    def test_number_successor_is_not_seeded(self):
        step = next_step("Visa Stamp", approved_employee())
        assert step is not None
        assert step.next_key == "labor_card_number"
        assert not step.should_seed

    def test_last_step_has_no_successor(self):
        assert next_step("Labor Card", approved_employee()) is None

    def test_label_outside_process_order(self):
        assert next_step("Tawjeeh Submission", approved_employee()) is None
        assert next_step("EID Appointment", approved_employee()) is None

    def test_unknown_label(self):
        assert next_step("General", approved_employee()) is None

    def test_status_field_detection(self):
        assert is_status_field("medical_application")
        assert not is_status_field("entry_date")
        assert not is_status_field("labor_card_number")


class TestApplyCompletion:
    """Tests for applying a completed step."""

    def test_sets_field_and_seeds_successor(self):
        completion = apply_completion(approved_employee(), "Entry Date", "2024-06-01")

        assert completion.employee.entry_date == "2024-06-01"
        assert completion.employee.medical_application == SEED_VALUE
        assert completion.field == "entry_date"
        assert completion.seeded

    def test_never_overwrites_existing_successor(self):
        employee = approved_employee(medical_application="Applied")
        completion = apply_completion(employee, "Entry Date", "2024-06-01")

        assert completion.employee.entry_date == "2024-06-01"
        assert completion.employee.medical_application == "Applied"
        assert not completion.seeded

    def test_input_employee_is_unchanged(self):
        employee = approved_employee()
        apply_completion(employee, "Entry Date", "2024-06-01")
        assert employee.entry_date == ""

    def test_final_step(self):
        completion = apply_completion(approved_employee(), "Labor Card", "LC-991")

        assert completion.employee.labor_card_number == "LC-991"
        assert completion.next_step is None

    def test_unknown_label_raises(self):
        with pytest.raises(KeyError):
            apply_completion(approved_employee(), "General", "x")


class TestSuggestedValue:
    """Tests for default prompt values."""

    @pytest.mark.parametrize(
        "label,expected",
        [
            ("Contract", "Completed"),
            ("Medical Result", "Fit"),
            ("Entry Permit", "Approved"),
            ("Entry Date", "2024-06-01"),
            ("Visa Stamp", "Completed"),
        ],
    )
    def test_by_label(self, label, expected):
        assert suggested_value(label, date(2024, 6, 1)) == expected
