"""
wp task <event> <id> - Move a task through its lifecycle.

Events: start, complete, block, unblock, stop, reopen, verify.
verify requires --evidence.
"""

from waypost.lib.config import ProjectConfig
from waypost.lib.repository import FilesystemRepository
from waypost.workflow.engine import Coordinator


def cmd_task(args, repo: FilesystemRepository, config: ProjectConfig) -> int:
    coord = Coordinator(repo, config)
    outcome = coord.transition(
        args.id,
        args.event,
        actor=args.actor,
        evidence=getattr(args, "evidence", None),
        owner=getattr(args, "owner", None),
    )
    print(f"{outcome.task_id}: {outcome.from_status.value} -> {outcome.to_status.value}")
    if outcome.unlocked:
        print(f"Unlocked: {', '.join(outcome.unlocked)}")
    return 0
