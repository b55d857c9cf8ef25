"""
wp audit verify - Check the journal's hash chain.
"""

from waypost.lib.config import ProjectConfig
from waypost.lib.journal import Journal
from waypost.lib.repository import FilesystemRepository


def cmd_audit_verify(args, repo: FilesystemRepository, config: ProjectConfig) -> int:
    report = Journal(repo).verify_integrity()
    if report.ok:
        print(f"Journal OK: {report.checked} event(s) verified")
        return 0

    print(f"ERROR: Journal integrity check failed ({len(report.problems)} problem(s) in {report.checked} events)")
    for problem in report.problems:
        print(f"  - {problem}")
    return 1
