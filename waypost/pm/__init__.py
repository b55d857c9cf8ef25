"""
PM (Project Management) module for waypost.

Holds the product spec model, turns a spec into a plan of tasks, and
measures drift between the two.
"""

from waypost.pm.models import (
    Constraint,
    Feature,
    ProductSpec,
    Requirement,
    spec_hash,
    validate_spec,
)
from waypost.pm.planner import (
    Decomposition,
    PlanGenerator,
    decompose_heuristic,
    prune_tasks,
    reconcile_plan,
)
from waypost.pm.drift import DriftIssue, DriftReport, detect_drift

__all__ = [
    "Constraint",
    "Feature",
    "ProductSpec",
    "Requirement",
    "spec_hash",
    "validate_spec",
    "Decomposition",
    "PlanGenerator",
    "decompose_heuristic",
    "prune_tasks",
    "reconcile_plan",
    "DriftIssue",
    "DriftReport",
    "detect_drift",
]
