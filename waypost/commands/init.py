"""
wp init - Create a waypost project in the current directory.

Creates .waypost/ with a default policy, an empty journal, config.yaml and,
unless one exists, a starter spec to edit.
"""

from waypost.lib.config import ProjectConfig, save_project_config
from waypost.lib.repository import FilesystemRepository
from waypost.pm.models import Feature, ProductSpec, Requirement
from waypost.workflow.policy import PolicyConfig


def _starter_spec(name: str) -> ProductSpec:
    return ProductSpec(
        id=name,
        title=name.replace("-", " ").title(),
        description="Describe what this project delivers.",
        version="0.1.0",
        features=[
            Feature(
                id="core",
                title="Core",
                description="First feature. Replace with your own.",
                requirements=[
                    Requirement(id="core-setup", title="Project setup", priority="high", estimate="1d"),
                ],
            ),
        ],
    )


def cmd_init(args, repo: FilesystemRepository, config: ProjectConfig) -> int:
    """Initialize the project directory."""
    policy = PolicyConfig(max_wip=args.max_wip) if args.max_wip is not None else PolicyConfig()
    if not repo.initialize(policy):
        print(f"Project already initialized at {repo.base}")
        return 0

    save_project_config(config)
    if repo.load_spec() is None:
        name = args.name or repo.root.resolve().name or "project"
        repo.save_spec(_starter_spec(name))

    print(f"Initialized waypost project at {repo.base}")
    print()
    print("Next steps:")
    print(f"  1. Edit {repo.base / 'spec.yaml'}")
    print("  2. wp plan generate")
    print("  3. wp plan approve")
    return 0
