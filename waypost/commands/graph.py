"""
wp graph check - Validate the plan's dependency graph.
"""

from waypost.lib.config import ProjectConfig
from waypost.lib.repository import FilesystemRepository
from waypost.workflow.engine import Coordinator


def cmd_graph_check(args, repo: FilesystemRepository, config: ProjectConfig) -> int:
    order = Coordinator(repo, config).check_graph()
    print(f"Dependency graph OK: {len(order)} task(s), no cycles")
    if args.order:
        for i, task_id in enumerate(order, 1):
            print(f"  {i:3d}. {task_id}")
    return 0
