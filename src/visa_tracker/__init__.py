"""Visa Tracker - employee visa and onboarding workflow over a spreadsheet store."""

__version__ = "0.1.0"

from visa_tracker.automaton import Completion, NextStep, apply_completion, next_step
from visa_tracker.config import configure_logging, get_settings
from visa_tracker.inference import collect_actions, compute_actions, sort_actions
from visa_tracker.ledger import TaskLedger, TaskSubmission
from visa_tracker.roster import EmployeeRoster
from visa_tracker.schema import (
    Action,
    ActionPriority,
    ActionType,
    DailyTask,
    Employee,
    TaskCategory,
    TaskStatus,
)
from visa_tracker.snapshot import Snapshot
from visa_tracker.store import SheetsAPIClient, TableStore
from visa_tracker.sync import SyncCoordinator, TableState

__all__ = [
    # Version
    "__version__",
    # Records
    "Action",
    "ActionPriority",
    "ActionType",
    "DailyTask",
    "Employee",
    "TaskCategory",
    "TaskStatus",
    "Snapshot",
    # Rules
    "compute_actions",
    "sort_actions",
    "collect_actions",
    "next_step",
    "apply_completion",
    "NextStep",
    "Completion",
    # Services
    "SyncCoordinator",
    "TableState",
    "TaskLedger",
    "TaskSubmission",
    "EmployeeRoster",
    # Store
    "SheetsAPIClient",
    "TableStore",
    # Config
    "configure_logging",
    "get_settings",
]
