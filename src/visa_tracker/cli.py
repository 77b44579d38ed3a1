"""Command-line front end.

Usage:
    # Sync and show the dashboard
    visa-tracker sync

    # Outstanding actions, most urgent first
    visa-tracker actions --company "Acme Trading"

    # Log a task; a workflow transaction prompts for the field's new value
    visa-tracker log-task "John Doe" "Medical Application" --company "Acme Trading"
"""

import argparse
import asyncio
import sys
from collections.abc import Sequence
from datetime import date

import structlog

from visa_tracker.config import bind_command_context, configure_logging
from visa_tracker.errors import VisaTrackerError
from visa_tracker.inference import collect_actions
from visa_tracker.ledger import TaskLedger
from visa_tracker.reports import dashboard, filter_employees, upcoming_expiries, workflow_breakdown
from visa_tracker.roster import EmployeeRoster
from visa_tracker.schema import DailyTask, TaskCategory, TaskStatus
from visa_tracker.store import SheetsAPIClient, TableStore
from visa_tracker.sync import SyncCoordinator

logger = structlog.get_logger(__name__)


async def prompt_value(prompt: str, suggested: str) -> str | None:
    """Ask on the terminal; Enter accepts the suggestion, end-of-input cancels."""
    try:
        answer = await asyncio.to_thread(input, f"{prompt} [{suggested}] ")
    except EOFError:
        return None
    return answer.strip() or suggested


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="visa-tracker",
        description="Visa and onboarding tracker over a spreadsheet store",
    )
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--log-format", choices=["json", "console"])
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("sync", help="Sync and print the dashboard")

    actions = commands.add_parser("actions", help="List outstanding actions")
    actions.add_argument("--company", help="Only this company")

    employees = commands.add_parser("employees", help="Search employees")
    employees.add_argument("query", nargs="?", default="", help="Name or id fragment")
    employees.add_argument("--company")
    employees.add_argument("--status", help="Entry permit status")
    employees.add_argument("--sort", default="id", help="Column to sort by (default: id)")
    employees.add_argument("--desc", action="store_true", help="Sort descending")

    expiries = commands.add_parser("expiries", help="Visas ending soon")
    expiries.add_argument("--window", type=int, default=30, help="Days ahead (default: 30)")

    tasks = commands.add_parser("tasks", help="List daily tasks, newest first")
    tasks.add_argument("--active", action="store_true", help="Only open tasks")

    log_task = commands.add_parser("log-task", help="Record a daily task")
    log_task.add_argument("employee", help="Employee name")
    log_task.add_argument("transaction", help='Transaction, e.g. "Medical Result"')
    log_task.add_argument("--company", default="")
    log_task.add_argument(
        "--category", choices=[c.value for c in TaskCategory], default=TaskCategory.VISA_PROCESS
    )
    log_task.add_argument(
        "--status", choices=[s.value for s in TaskStatus], default=TaskStatus.PENDING
    )
    log_task.add_argument("--notes", default="")
    log_task.add_argument("--sent-by", default="")
    log_task.add_argument("--done-by", default="")
    log_task.add_argument("--id", default="", help="Edit the task with this id")

    delete_task = commands.add_parser("delete-task", help="Delete a daily task")
    delete_task.add_argument("id")

    companies = commands.add_parser("companies", help="List, add or remove companies")
    companies.add_argument("--add", metavar="NAME")
    companies.add_argument("--remove", metavar="NAME")

    return parser


def _print_dashboard(coordinator: SyncCoordinator, today: date) -> None:
    stats = dashboard(coordinator.snapshot, today)
    source = "cache" if coordinator.offline else "store"
    print(f"Snapshot from {source} at {coordinator.snapshot.synced_at:%Y-%m-%d %H:%M}")
    print(
        f"Employees: {stats.total_employees}  Companies: {stats.companies}  "
        f"Active: {stats.active}  Pending actions: {stats.pending_actions}"
    )
    for company, counts in workflow_breakdown(coordinator.snapshot).items():
        summary = ", ".join(f"{n} {category.value}" for category, n in counts.items())
        print(f"  {company}: {summary}")


def _print_task(task: DailyTask) -> None:
    print(
        f"{task.id:>14}  {task.date:<10}  {task.status.value:<11}  "
        f"{task.employee_name} ({task.company})  {task.transaction}"
    )


async def run(args: argparse.Namespace, store: TableStore, today: date) -> int:
    """Execute one parsed command against a store; returns the exit status."""
    coordinator = SyncCoordinator(store)
    await coordinator.sync_or_fallback()
    snapshot = coordinator.snapshot

    if args.command == "sync":
        _print_dashboard(coordinator, today)

    elif args.command == "actions":
        employees = snapshot.employees_in(args.company) if args.company else snapshot.employees
        for item in collect_actions(employees, today):
            print(
                f"[{item.priority.value:<8}] {item.employee_name} ({item.company}): "
                f"{item.action.label} - {item.action.value}"
            )

    elif args.command == "employees":
        for employee in filter_employees(
            snapshot.employees, args.query, args.company, args.status, args.sort, args.desc
        ):
            print(
                f"{employee.id:>4}  {employee.employee_name:<30} {employee.company:<20} "
                f"{employee.entry_permit_status}"
            )

    elif args.command == "expiries":
        for expiry in upcoming_expiries(snapshot, today, args.window):
            print(
                f"{expiry.date.isoformat()}  [{expiry.priority.value}] "
                f"{expiry.employee_name} ({expiry.company}) {expiry.kind}"
            )

    elif args.command == "tasks":
        ledger = TaskLedger(coordinator)
        for task in ledger.active_tasks() if args.active else ledger.tasks():
            _print_task(task)

    elif args.command == "log-task":
        ledger = TaskLedger(coordinator, confirm_value=prompt_value)
        task = DailyTask(
            id=args.id,
            employee_name=args.employee,
            company=args.company,
            transaction=args.transaction,
            category=TaskCategory.parse(args.category),
            status=TaskStatus.parse(args.status),
            notes=args.notes,
            sent_by=args.sent_by,
            done_by=args.done_by,
        )
        submission = await ledger.submit(task, is_edit=bool(args.id))
        _print_task(submission.task)
        if submission.completion is not None:
            completion = submission.completion
            print(f"Updated {completion.field} to {completion.value!r}")
            if completion.seeded and completion.next_step is not None:
                print(f"Seeded {completion.next_step.next_label} as Pending")
        elif submission.error is not None:
            print(f"Employee not updated: {submission.error}")

    elif args.command == "delete-task":
        ledger = TaskLedger(coordinator)
        existing = ledger.find(args.id)
        if existing is None:
            print(f"No task with id {args.id}", file=sys.stderr)
            return 1
        await ledger.delete(existing)

    elif args.command == "companies":
        roster = EmployeeRoster(coordinator)
        if args.add:
            await roster.create_company(args.add)
        if args.remove:
            await roster.delete_company(args.remove)
        for company in coordinator.snapshot.companies:
            print(f"{company} ({len(coordinator.snapshot.employees_in(company))} employees)")

    return 0


async def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(level=args.log_level, format=args.log_format)
    bind_command_context(args.command)

    try:
        async with SheetsAPIClient() as store:
            return await run(args, store, date.today())
    except VisaTrackerError as e:
        logger.error("command_failed", command=args.command, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("command_interrupted", command=args.command)
        return 130


def main_entry() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    main_entry()
