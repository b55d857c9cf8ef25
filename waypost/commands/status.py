"""
wp status - Show plan progress and what can be worked on next.
"""

from waypost.lib.config import ProjectConfig
from waypost.lib.repository import FilesystemRepository
from waypost.lib.timeline import COLORS
from waypost.workflow.engine import Coordinator
from waypost.workflow.state_machine import TaskStatus


def cmd_status(args, repo: FilesystemRepository, config: ProjectConfig) -> int:
    snap = Coordinator(repo, config).snapshot()
    colorize = not args.no_color
    dim = COLORS["dim"] if colorize else ""
    bold = COLORS["bold"] if colorize else ""
    reset = COLORS["reset"] if colorize else ""

    print(f"{dim}Plan:{reset}     {snap.plan_id} ({snap.approval_status.value})")
    print(f"{dim}Progress:{reset} {bold}{snap.progress_percent:.1f}%{reset} "
          f"({snap.completed}/{snap.total} complete)")
    print()

    sections = [
        ("Ready", snap.ready),
        (TaskStatus.IN_PROGRESS.display_name, snap.in_progress),
        (TaskStatus.BLOCKED.display_name, snap.blocked),
        (TaskStatus.DONE.display_name, snap.done),
        (TaskStatus.VERIFIED.display_name, snap.verified),
    ]
    for label, ids in sections:
        if not ids:
            continue
        print(f"{label} ({len(ids)}):")
        for task_id in ids:
            print(f"  {task_id}")
    return 0
