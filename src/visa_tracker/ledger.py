"""Daily task ledger: validated task writes and the workflow steps they drive.

Saving a task whose transaction names a workflow field asks the operator for
the field's new value, writes it to the employee's row and, when the next
step in the process is a status field that is still empty, seeds it as
"Pending" in the same row write.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import date

import structlog

from visa_tracker.automaton import Completion, apply_completion, suggested_value
from visa_tracker.errors import (
    AmbiguousEmployeeReference,
    DuplicateActiveTask,
    EmployeeNotFound,
    ExternalReadFailure,
    ExternalWriteFailure,
    InvariantViolation,
    RecordNotFound,
    ValidationError,
    VisaTrackerError,
)
from visa_tracker.inference import compute_actions, status_for_action, suggest_status
from visa_tracker.schema import (
    Action,
    DailyTask,
    Employee,
    TaskCategory,
    field_for_label,
    parse_date,
)
from visa_tracker.store.base import ConfirmValue
from visa_tracker.sync import SyncCoordinator

logger = structlog.get_logger(__name__)

DEFAULT_TRANSACTION = "General"
SYSTEM_SENDER = "System"


def normalize_transaction(transaction: str) -> str:
    """Drop a trailing ``": value"`` qualifier from a composed label."""
    return (transaction or "").split(":", 1)[0].strip()


def new_task_id() -> str:
    """Millisecond timestamp id, matching ids written by earlier clients."""
    return str(time.time_ns() // 1_000_000)


@dataclass(frozen=True)
class TaskSubmission:
    """Outcome of saving a task.

    The task is saved whenever a submission is returned. ``completion`` is
    set when the linked employee was advanced; otherwise ``skipped`` says why
    not and ``error`` carries the failure, if one caused it.
    """

    task: DailyTask
    is_edit: bool
    completion: Completion | None = None
    skipped: str | None = None
    error: VisaTrackerError | None = None

    @property
    def advanced(self) -> bool:
        return self.completion is not None


class TaskLedger:
    """Validates and records daily tasks against the synced snapshot."""

    def __init__(
        self,
        coordinator: SyncCoordinator,
        confirm_value: ConfirmValue | None = None,
        today: Callable[[], date] = date.today,
    ):
        self.coordinator = coordinator
        self.confirm_value = confirm_value
        self._today = today

    # === Queries ===

    def tasks(self) -> list[DailyTask]:
        """All tasks, newest date first."""
        return sorted(
            self.coordinator.snapshot.tasks,
            key=lambda t: parse_date(t.date) or date.min,
            reverse=True,
        )

    def active_tasks(self) -> list[DailyTask]:
        return [t for t in self.tasks() if t.is_active]

    def find(self, task_id: str) -> DailyTask | None:
        return self.coordinator.snapshot.find_task(task_id)

    def find_duplicate(self, task: DailyTask) -> DailyTask | None:
        """An active task with the same employee, company and transaction."""
        for existing in self.coordinator.snapshot.tasks:
            if existing.is_active and existing.identity == task.identity:
                return existing
        return None

    def draft_for(self, employee: Employee, action: Action | None = None) -> DailyTask | None:
        """Pre-filled task for an employee's action.

        Without an explicit action the employee's first derived action is used.
        """
        if action is None:
            actions = compute_actions(employee, self._today())
            if not actions:
                return None
            action = actions[0]
            status = status_for_action(action)
        else:
            status = suggest_status(action.value)

        return DailyTask(
            employee_name=employee.employee_name,
            company=employee.company,
            transaction=action.label,
            date=self._today().isoformat(),
            category=TaskCategory.VISA_PROCESS,
            status=status,
            sent_by=SYSTEM_SENDER,
        )

    # === Writes ===

    def _prepare(self, task: DailyTask, is_edit: bool = False) -> DailyTask:
        transaction = normalize_transaction(task.transaction) or DEFAULT_TRANSACTION
        company = task.company.strip()
        if not company:
            company = self._company_for(task.employee_name)
        task_id = task.id.strip()
        if not task_id and is_edit:
            # An edit addressed by row keeps the id of the task already there
            occupant = self.coordinator.snapshot.task_at(task.row_index)
            if occupant is not None:
                task_id = occupant.id
        if not task_id:
            task_id = new_task_id()
            while self.coordinator.snapshot.find_task(task_id) is not None:
                task_id = str(int(task_id) + 1)
        return replace(
            task,
            id=task_id,
            date=task.date.strip() or self._today().isoformat(),
            transaction=transaction,
            company=company,
        )

    def _company_for(self, employee_name: str) -> str:
        wanted = (employee_name or "").lower()
        for employee in self.coordinator.snapshot.employees:
            if employee.employee_name.lower() == wanted:
                return employee.company
        return ""

    async def submit(self, task: DailyTask, is_edit: bool = False) -> TaskSubmission:
        """Save a task and advance the linked employee's workflow.

        Raises:
            DuplicateActiveTask: A new active task repeats an open one.
            RecordNotFound: An edit targets a task that is not in the snapshot.
            ExternalWriteFailure: The task row could not be written.
        """
        task = self._prepare(task, is_edit)
        existing = self.coordinator.snapshot.find_task(task.id)

        if is_edit:
            if existing is None and task.row_index is None:
                raise RecordNotFound(f"Task {task.id!r} not found", details={"id": task.id})
        else:
            if task.is_active:
                duplicate = self.find_duplicate(task)
                if duplicate is not None:
                    logger.info(
                        "duplicate_active_task_rejected",
                        employee=task.employee_name,
                        company=task.company,
                        transaction=task.transaction,
                        existing_id=duplicate.id,
                    )
                    raise DuplicateActiveTask(task.employee_name, task.company, task.transaction)
            if existing is not None:
                raise ValidationError(f"Task id {task.id!r} is already in use")
            task = replace(task, row_index=None)

        saved = await self.coordinator.save_task(task)
        logger.info(
            "task_saved",
            task_id=saved.id,
            is_edit=is_edit,
            transaction=saved.transaction,
            status=saved.status.value,
        )
        return await self._advance(saved, is_edit)

    async def _advance(self, task: DailyTask, is_edit: bool) -> TaskSubmission:
        label = task.transaction
        if field_for_label(label) is None:
            return TaskSubmission(task, is_edit, skipped="unmapped_transaction")

        try:
            employee = self.coordinator.resolve_employee(task.employee_name, task.company)
        except EmployeeNotFound as e:
            logger.info(
                "workflow_employee_not_found",
                employee=task.employee_name,
                company=task.company,
            )
            return TaskSubmission(task, is_edit, skipped="employee_not_found", error=e)
        except AmbiguousEmployeeReference as e:
            logger.warning(
                "workflow_employee_ambiguous",
                employee=task.employee_name,
                company=task.company,
                matches=e.matches,
            )
            return TaskSubmission(task, is_edit, skipped="ambiguous_employee", error=e)

        if self.confirm_value is None:
            return TaskSubmission(task, is_edit, skipped="no_prompt")

        prompt = (
            f'Workflow Action: Updating "{label}" for {employee.employee_name}.\n'
            "Enter new value:"
        )
        value = await self.confirm_value(prompt, suggested_value(label, self._today()))
        if value is None or not value.strip():
            logger.info("workflow_update_cancelled", employee=employee.employee_name, label=label)
            return TaskSubmission(task, is_edit, skipped="cancelled")

        completion = apply_completion(employee, label, value.strip())
        try:
            await self.coordinator.update_employee(completion.employee)
        except InvariantViolation as e:
            logger.error("workflow_update_refused", employee=employee.employee_name, error=str(e))
            try:
                await self.coordinator.refresh_table(employee.company)
            except ExternalReadFailure as read_error:
                logger.error(
                    "workflow_resync_failed", company=employee.company, error=str(read_error)
                )
            return TaskSubmission(task, is_edit, skipped="stale_employee_row", error=e)
        except (ExternalWriteFailure, RecordNotFound) as e:
            logger.error("workflow_update_failed", employee=employee.employee_name, error=str(e))
            return TaskSubmission(task, is_edit, skipped="employee_write_failed", error=e)

        step = completion.next_step
        seeded = step.next_key if step is not None and step.should_seed else None
        logger.info(
            "workflow_advanced",
            employee=employee.employee_name,
            field=completion.field,
            value=completion.value,
            seeded=seeded,
        )
        return TaskSubmission(task, is_edit, completion=completion)

    async def delete(self, task: DailyTask) -> None:
        """Delete a task row; the task table is re-read afterwards."""
        await self.coordinator.delete_task(task)
        logger.info("task_deleted", task_id=task.id)
