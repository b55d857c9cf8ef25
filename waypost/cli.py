#!/usr/bin/env python3
"""waypost CLI entrypoint."""

import sys
import argparse
import logging
from pathlib import Path

from waypost.lib.config import load_project_config
from waypost.lib.errors import (
    CyclicDependencyError,
    DependencyError,
    EvidenceRequiredError,
    GuardViolationError,
    NoPlanError,
    NoSpecError,
    NotInitializedError,
    PersistenceError,
    PlanNotApprovedError,
    PolicyViolationError,
    PreconditionError,
    TransitionError,
    ValidationError,
    WaypostError,
)
from waypost.lib.repository import FilesystemRepository
from waypost.lib.usage import UsageStats
from waypost.workflow.state_machine import TaskEvent
from waypost.commands import audit as cmd_audit_module
from waypost.commands import drift as cmd_drift_module
from waypost.commands import forecast as cmd_forecast_module
from waypost.commands import graph as cmd_graph_module
from waypost.commands import init as cmd_init_module
from waypost.commands import log as cmd_log_module
from waypost.commands import plan as cmd_plan_module
from waypost.commands import policy as cmd_policy_module
from waypost.commands import spec as cmd_spec_module
from waypost.commands import status as cmd_status_module
from waypost.commands import task as cmd_task_module
from waypost.commands import usage as cmd_usage_module

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_GUARD = 1
EXIT_PRECONDITION = 2
EXIT_PERSISTENCE = 3

# Follow-up hints, most specific class first
HINTS = [
    (NotInitializedError, "Run 'wp init' to create a project here."),
    (NoSpecError, "Create .waypost/spec.yaml (or run 'wp init')."),
    (NoPlanError, "Run 'wp plan generate'."),
    (PlanNotApprovedError, "Review with 'wp plan show', then run 'wp plan approve'."),
    (DependencyError, "Complete the dependency first. 'wp status' lists ready tasks."),
    (EvidenceRequiredError, "Pass --evidence with a link or note describing the verification."),
    (TransitionError, "Check the task's current status with 'wp status'."),
    (PolicyViolationError, "Finish or stop an in-progress task, or adjust .waypost/policy.yaml."),
    (CyclicDependencyError, "Remove one of the dependencies on the cycle and regenerate the plan."),
]


def exit_code_for(error: WaypostError) -> int:
    if isinstance(error, GuardViolationError):
        return EXIT_GUARD
    if isinstance(error, (PreconditionError, ValidationError)):
        return EXIT_PRECONDITION
    if isinstance(error, PersistenceError):
        return EXIT_PERSISTENCE
    return EXIT_PRECONDITION


def hint_for(error: WaypostError) -> str | None:
    for error_type, hint in HINTS:
        if isinstance(error, error_type):
            return hint
    return None


def get_repository(args) -> FilesystemRepository:
    return FilesystemRepository(Path(args.root).resolve())


def _record_command(repo: FilesystemRepository) -> None:
    """Count a successful command in usage.json."""
    try:
        usage = repo.load_usage() or UsageStats()
        usage.increment_command()
        repo.save_usage(usage)
    except PersistenceError as e:
        logger.warning(f"Could not update usage stats: {e}")


def run_command(args) -> int:
    """Load repository and config, run the command, map errors to exit codes."""
    repo = get_repository(args)
    config = load_project_config(repo.root)
    if args.actor is None:
        args.actor = config.actor

    try:
        if args.func is not cmd_init_module.cmd_init:
            repo.require_initialized()
        code = args.func(args, repo, config)
    except WaypostError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        hint = hint_for(e)
        if hint:
            print(f"  Hint: {hint}", file=sys.stderr)
        return exit_code_for(e)

    if code == EXIT_OK:
        _record_command(repo)
    return code


def _add_task_parser(subparsers, event: TaskEvent, help_text: str):
    p = subparsers.add_parser(event.value, help=help_text)
    p.add_argument('id', help='Task ID')
    p.set_defaults(func=cmd_task_module.cmd_task, event=event.value)
    return p


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='wp', description='waypost plan execution and governance')
    parser.add_argument('--root', '-C', default='.', help='Project root (default: current directory)')
    parser.add_argument('--actor', help='Actor recorded in the journal (default from config.yaml)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output and debug logging')
    parser.add_argument('--no-color', action='store_true', help='Disable colored output')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # wp init
    p_init = subparsers.add_parser('init', help='Create a waypost project')
    p_init.add_argument('--name', help='Spec id for the starter spec (default: directory name)')
    p_init.add_argument('--max-wip', type=int, help='WIP limit for the default policy')
    p_init.set_defaults(func=cmd_init_module.cmd_init)

    # wp spec
    p_spec = subparsers.add_parser('spec', help='Spec commands')
    spec_sub = p_spec.add_subparsers(dest='spec_cmd', required=True)
    p_spec_validate = spec_sub.add_parser('validate', help='Validate spec.yaml')
    p_spec_validate.set_defaults(func=cmd_spec_module.cmd_spec_validate)

    # wp plan
    p_plan = subparsers.add_parser('plan', help='Plan commands')
    plan_sub = p_plan.add_subparsers(dest='plan_cmd', required=True)
    plan_sub.add_parser('generate', help='Generate plan from spec').set_defaults(
        func=cmd_plan_module.cmd_plan_generate)
    plan_sub.add_parser('approve', help='Approve the plan').set_defaults(
        func=cmd_plan_module.cmd_plan_approve)
    plan_sub.add_parser('reject', help='Reject the plan').set_defaults(
        func=cmd_plan_module.cmd_plan_reject)
    plan_sub.add_parser('prune', help='Remove tasks no longer in the spec').set_defaults(
        func=cmd_plan_module.cmd_plan_prune)
    plan_sub.add_parser('show', help='Show plan tasks').set_defaults(
        func=cmd_plan_module.cmd_plan_show)

    # wp task
    p_task = subparsers.add_parser('task', help='Task lifecycle commands')
    task_sub = p_task.add_subparsers(dest='task_cmd', required=True)
    p_start = _add_task_parser(task_sub, TaskEvent.START, 'Start a task')
    p_start.add_argument('--owner', help='Task owner (default: actor)')
    _add_task_parser(task_sub, TaskEvent.COMPLETE, 'Mark a task done')
    _add_task_parser(task_sub, TaskEvent.BLOCK, 'Mark a task blocked')
    _add_task_parser(task_sub, TaskEvent.UNBLOCK, 'Return a blocked task to pending')
    _add_task_parser(task_sub, TaskEvent.STOP, 'Return an in-progress task to pending')
    _add_task_parser(task_sub, TaskEvent.REOPEN, 'Reopen a done or verified task')
    p_verify = _add_task_parser(task_sub, TaskEvent.VERIFY, 'Verify a done task')
    p_verify.add_argument('--evidence', '-e', help='Verification evidence (required)')

    # wp graph
    p_graph = subparsers.add_parser('graph', help='Dependency graph commands')
    graph_sub = p_graph.add_subparsers(dest='graph_cmd', required=True)
    p_graph_check = graph_sub.add_parser('check', help='Check for cycles and unknown dependencies')
    p_graph_check.add_argument('--order', action='store_true', help='Print a topological order')
    p_graph_check.set_defaults(func=cmd_graph_module.cmd_graph_check)

    # wp status
    p_status = subparsers.add_parser('status', help='Show progress')
    p_status.set_defaults(func=cmd_status_module.cmd_status)

    # wp policy
    p_policy = subparsers.add_parser('policy', help='Policy commands')
    policy_sub = p_policy.add_subparsers(dest='policy_cmd', required=True)
    policy_sub.add_parser('check', help='Report policy violations').set_defaults(
        func=cmd_policy_module.cmd_policy_check)

    # wp drift
    p_drift = subparsers.add_parser('drift', help='Detect spec/plan drift')
    p_drift.add_argument('--accept', action='store_true', help='Accept the current spec as intent')
    p_drift.set_defaults(func=cmd_drift_module.cmd_drift)

    # wp forecast
    p_forecast = subparsers.add_parser('forecast', help='Velocity and completion forecast')
    p_forecast.add_argument('--burndown', action='store_true', help='Print burndown points')
    p_forecast.set_defaults(func=cmd_forecast_module.cmd_forecast)

    # wp log
    p_log = subparsers.add_parser('log', help='Show the audit journal')
    p_log.add_argument('--limit', '-n', type=int, help='Show at most N events')
    p_log.add_argument('--since', help='Only events since (1h, 2d, 1w, or ISO timestamp)')
    p_log.add_argument('--task', help='Only events for this task')
    p_log.add_argument('--reverse', '-r', action='store_true', help='Oldest first')
    p_log.set_defaults(func=cmd_log_module.cmd_log)

    # wp audit
    p_audit = subparsers.add_parser('audit', help='Audit commands')
    audit_sub = p_audit.add_subparsers(dest='audit_cmd', required=True)
    audit_sub.add_parser('verify', help='Verify the journal hash chain').set_defaults(
        func=cmd_audit_module.cmd_audit_verify)

    # wp usage
    p_usage = subparsers.add_parser('usage', help='Show usage stats')
    p_usage.add_argument('--log-hours', type=float, help='Add logged hours')
    p_usage.set_defaults(func=cmd_usage_module.cmd_usage)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    return run_command(args)


if __name__ == '__main__':
    sys.exit(main())
