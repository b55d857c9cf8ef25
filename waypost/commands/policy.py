"""
wp policy check - Report policy findings for the current plan and state.

Reporting only; this never blocks anything.
"""

from waypost.lib.config import ProjectConfig
from waypost.lib.repository import FilesystemRepository
from waypost.workflow.engine import Coordinator


def cmd_policy_check(args, repo: FilesystemRepository, config: ProjectConfig) -> int:
    coord = Coordinator(repo, config)
    policy = coord.load_policy()
    violations = coord.check_compliance()

    max_wip = policy.max_wip if policy.max_wip > 0 else "unlimited"
    print(f"Policy: max_wip={max_wip} allow_ai={policy.allow_ai} "
          f"token_limit={policy.token_limit or 'none'} budget_hours={policy.budget_hours or 'none'}")

    if not violations:
        print("No policy violations.")
        return 0

    print()
    for v in violations:
        print(f"  {v.level.value.upper():7s} [{v.rule_id}] {v.message}")
    return 0
