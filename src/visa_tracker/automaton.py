"""Process progression: which onboarding step follows a completed one.

Completing a step may seed its successor as "Pending" so the record shows up
in the pending-actions view without an operator filling every field by hand.
Only status-like successors are seeded; date and number fields hold values an
operator must supply.
"""

from dataclasses import dataclass
from datetime import date

from visa_tracker.schema import (
    PROCESS_ORDER,
    Employee,
    field_for_label,
    label_for_field,
)

SEED_VALUE = "Pending"


@dataclass(frozen=True)
class NextStep:
    """Successor of a completed step."""

    next_key: str
    next_label: str
    should_seed: bool


@dataclass(frozen=True)
class Completion:
    """Result of completing one step on an employee."""

    employee: Employee
    field: str
    value: str
    next_step: NextStep | None

    @property
    def seeded(self) -> bool:
        return self.next_step is not None and self.next_step.should_seed


def is_status_field(key: str) -> bool:
    """Status-like fields are the ones whose name mentions neither date nor number."""
    lowered = key.lower()
    return "date" not in lowered and "number" not in lowered


def next_step(completed_label: str, employee: Employee) -> NextStep | None:
    """Decide the step after ``completed_label`` for the edited employee.

    Returns None when the label is not a workflow field, is outside the
    process order, or is the final step.
    """
    key = field_for_label(completed_label)
    if key is None or key not in PROCESS_ORDER:
        return None

    position = PROCESS_ORDER.index(key)
    if position == len(PROCESS_ORDER) - 1:
        return None

    candidate = PROCESS_ORDER[position + 1]
    should_seed = is_status_field(candidate) and not employee.value_of(candidate)
    return NextStep(
        next_key=candidate,
        next_label=label_for_field(candidate),
        should_seed=should_seed,
    )


def suggested_value(label: str, today: date) -> str:
    """Default value offered when an operator completes a step."""
    value = "Completed"
    if "Result" in label:
        value = "Fit"
    if "Permit" in label or "Status" in label:
        value = "Approved"
    if "Date" in label:
        value = today.isoformat()
    return value


def apply_completion(employee: Employee, label: str, new_value: str) -> Completion:
    """Set the field behind ``label`` and seed its successor when allowed.

    Raises:
        KeyError: If the label does not name a workflow field.
    """
    key = field_for_label(label)
    if key is None:
        raise KeyError(label)

    edited = employee.with_values(**{key: new_value})
    step = next_step(label, edited)
    if step is not None and step.should_seed:
        edited = edited.with_values(**{step.next_key: SEED_VALUE})
    return Completion(employee=edited, field=key, value=new_value, next_step=step)
