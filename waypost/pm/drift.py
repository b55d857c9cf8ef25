"""
Drift detection between intent (spec) and execution (plan).

detect_drift() never fails on drift; it always returns a report, possibly
empty, and leaves it to the caller whether to warn or block.

Issue kinds:
- spec-changed: spec differs from the accepted lock
- missing-task: a requirement has no task-<requirement id> in the plan
- orphan-task: a task matches no requirement and no feature
- mismatched-feature: a requirement's task is filed under another feature
- policy-violation: a compliance finding from the policy engine
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from waypost.lib.timeutil import format_timestamp, utc_now
from waypost.pm.models import ProductSpec, spec_hash
from waypost.pm.planner import requirement_task_id
from waypost.workflow.models import Plan


class Severity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


SEVERITY_FOR_LEVEL = {"error": Severity.HIGH, "warning": Severity.MEDIUM, "info": Severity.LOW}


@dataclass(frozen=True)
class DriftIssue:
    kind: str
    severity: Severity
    message: str
    related_ids: tuple[str, ...] = ()
    hint: str = ""


@dataclass
class DriftReport:
    issues: list[DriftIssue] = field(default_factory=list)
    generated_at: Optional[str] = None

    @property
    def has_drift(self) -> bool:
        return bool(self.issues)

    def by_kind(self, kind: str) -> list[DriftIssue]:
        return [i for i in self.issues if i.kind == kind]

    def count_by_severity(self) -> dict[str, int]:
        counts = {s.value: 0 for s in Severity}
        for issue in self.issues:
            counts[issue.severity.value] += 1
        return counts


def build_spec_lock(spec: ProductSpec, now: Optional[datetime] = None) -> dict:
    return {
        "spec_id": spec.id,
        "spec_hash": spec_hash(spec),
        "locked_at": format_timestamp(now or utc_now()),
    }


def detect_drift(
    spec: ProductSpec,
    plan: Optional[Plan],
    spec_lock: Optional[dict] = None,
    violations: Optional[list] = None,
    now: Optional[datetime] = None,
) -> DriftReport:
    """Compare spec against plan (and lock, and compliance findings)."""
    report = DriftReport(generated_at=format_timestamp(now or utc_now()))

    if spec_lock and spec_lock.get("spec_hash") != spec_hash(spec):
        report.issues.append(DriftIssue(
            kind="spec-changed",
            severity=Severity.MEDIUM,
            message="The spec has changed since it was last accepted; plan and intent may be out of sync",
            related_ids=(spec.id,),
            hint="Run 'wp plan generate' to replan, or 'wp drift --accept' to keep the current plan",
        ))

    tasks = {t.id: t for t in plan.tasks} if plan else {}
    requirement_feature = {}
    for feature, req in spec.iter_requirements():
        task_id = requirement_task_id(req.id)
        requirement_feature[task_id] = feature.id
        if task_id not in tasks:
            report.issues.append(DriftIssue(
                kind="missing-task",
                severity=Severity.MEDIUM,
                message=f"Requirement '{req.title}' (feature: {feature.title}) has no task in the plan",
                related_ids=(req.id, feature.id),
                hint="Run 'wp plan generate' to update the plan",
            ))

    feature_ids = {f.id for f in spec.features}
    for task in tasks.values():
        expected_feature = requirement_feature.get(task.id)
        if expected_feature is not None:
            if task.feature_id and task.feature_id != expected_feature:
                report.issues.append(DriftIssue(
                    kind="mismatched-feature",
                    severity=Severity.LOW,
                    message=(
                        f"Task '{task.id}' is filed under feature '{task.feature_id}' "
                        f"but its requirement belongs to '{expected_feature}'"
                    ),
                    related_ids=(task.id, task.feature_id, expected_feature),
                    hint="Run 'wp plan generate' to realign the task with the spec",
                ))
        elif task.feature_id not in feature_ids:
            report.issues.append(DriftIssue(
                kind="orphan-task",
                severity=Severity.MEDIUM,
                message=f"Task '{task.title}' ({task.id}) matches no feature or requirement in the spec",
                related_ids=(task.id,),
                hint="Run 'wp plan prune' or add the intent to the spec",
            ))

    for v in violations or []:
        report.issues.append(DriftIssue(
            kind="policy-violation",
            severity=SEVERITY_FOR_LEVEL.get(v.level.value, Severity.MEDIUM),
            message=v.message,
            related_ids=(v.rule_id,),
            hint="Adjust execution state or policy.yaml to resolve this violation",
        ))

    return report
