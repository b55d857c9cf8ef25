"""
wp spec validate - Check the spec for structural problems.
"""

from waypost.lib.config import ProjectConfig
from waypost.lib.errors import NoSpecError
from waypost.lib.repository import FilesystemRepository
from waypost.pm.models import spec_hash, validate_spec


def cmd_spec_validate(args, repo: FilesystemRepository, config: ProjectConfig) -> int:
    spec = repo.load_spec()
    if spec is None:
        raise NoSpecError()

    problems = validate_spec(spec)
    requirement_count = sum(1 for _ in spec.iter_requirements())
    print(f"Spec:         {spec.id} ({spec.title})")
    print(f"Features:     {len(spec.features)}")
    print(f"Requirements: {requirement_count}")
    print(f"Hash:         {spec_hash(spec)[:12]}")

    if problems:
        print()
        print(f"ERROR: {len(problems)} problem(s) found:")
        for problem in problems:
            print(f"  - {problem}")
        return 2

    print()
    print("Spec is valid.")
    return 0
