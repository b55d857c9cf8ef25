"""
wp drift - Compare the spec against the plan.

With --accept, records the current spec as accepted intent.
"""

from waypost.lib.config import ProjectConfig
from waypost.lib.repository import FilesystemRepository
from waypost.workflow.engine import Coordinator


def cmd_drift(args, repo: FilesystemRepository, config: ProjectConfig) -> int:
    coord = Coordinator(repo, config)
    if args.accept:
        lock = coord.accept_drift(actor=args.actor)
        print(f"Accepted spec {lock['spec_id']} ({lock['spec_hash'][:12]})")
        return 0

    report = coord.detect_drift()
    if not report.has_drift:
        print("No drift detected.")
        return 0

    counts = report.count_by_severity()
    print(f"{len(report.issues)} drift issue(s): "
          f"{counts['high']} high, {counts['medium']} medium, {counts['low']} low")
    print()
    for issue in report.issues:
        print(f"  {issue.severity.value.upper():6s} {issue.kind}: {issue.message}")
        if args.verbose and issue.hint:
            print(f"         hint: {issue.hint}")
    return 0
