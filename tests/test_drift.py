"""Tests for waypost.pm.drift module."""

from datetime import datetime, timezone

import pytest

from waypost.pm.drift import Severity, build_spec_lock, detect_drift
from waypost.pm.models import Feature, ProductSpec, Requirement
from waypost.pm.planner import decompose_heuristic, reconcile_plan
from waypost.workflow.models import Plan, Task
from waypost.workflow.policy import Violation, ViolationLevel

NOW = datetime(2025, 3, 1, tzinfo=timezone.utc)


@pytest.fixture
def spec():
    return ProductSpec(
        id="shop",
        title="Shop",
        features=[
            Feature(id="cart", title="Cart", requirements=[
                Requirement(id="add-item", title="Add item"),
                Requirement(id="checkout", title="Checkout"),
            ]),
            Feature(id="search", title="Search", requirements=[
                Requirement(id="query", title="Query"),
            ]),
        ],
    )


@pytest.fixture
def plan(spec):
    return reconcile_plan(spec, decompose_heuristic(spec), now=NOW)


class TestDetectDrift:

    def test_generated_plan_has_no_drift(self, spec, plan):
        report = detect_drift(spec, plan, spec_lock=build_spec_lock(spec, NOW), now=NOW)
        assert report.issues == []
        assert not report.has_drift

    def test_deleted_task_is_missing(self, spec, plan):
        plan.tasks = [t for t in plan.tasks if t.id != "task-checkout"]
        report = detect_drift(spec, plan, now=NOW)
        assert len(report.issues) == 1
        issue = report.issues[0]
        assert issue.kind == "missing-task"
        assert issue.related_ids == ("checkout", "cart")
        assert "Checkout" in issue.message

    def test_no_plan_means_every_requirement_missing(self, spec):
        report = detect_drift(spec, None, now=NOW)
        assert len(report.by_kind("missing-task")) == 3

    def test_orphan_task(self, spec, plan):
        plan.tasks.append(Task(id="task-legacy", title="Legacy export", feature_id="export"))
        report = detect_drift(spec, plan, now=NOW)
        assert [i.kind for i in report.issues] == ["orphan-task"]
        assert report.issues[0].related_ids == ("task-legacy",)

    def test_manual_task_under_known_feature_is_fine(self, spec, plan):
        plan.tasks.append(Task(id="task-docs", title="Docs", feature_id="cart"))
        assert not detect_drift(spec, plan, now=NOW).has_drift

    def test_mismatched_feature(self, spec, plan):
        plan.get_task("task-query").feature_id = "cart"
        report = detect_drift(spec, plan, now=NOW)
        assert [i.kind for i in report.issues] == ["mismatched-feature"]
        assert report.issues[0].severity == Severity.LOW

    def test_spec_changed_since_lock(self, spec, plan):
        lock = build_spec_lock(spec, NOW)
        spec.features[0].requirements[0].description = "Quantities too"
        report = detect_drift(spec, plan, spec_lock=lock, now=NOW)
        assert [i.kind for i in report.issues] == ["spec-changed"]

    def test_policy_violations_included(self, spec, plan):
        violations = [
            Violation("max-wip", "WIP limit exceeded", ViolationLevel.WARNING),
            Violation("dependency-check", "b depends on a", ViolationLevel.ERROR),
        ]
        report = detect_drift(spec, plan, violations=violations, now=NOW)
        assert [i.severity for i in report.by_kind("policy-violation")] == [Severity.MEDIUM, Severity.HIGH]
        assert report.count_by_severity() == {"low": 0, "medium": 1, "high": 1}

    def test_report_timestamp(self, spec, plan):
        assert detect_drift(spec, plan, now=NOW).generated_at == "2025-03-01T00:00:00+00:00"


class TestSpecLock:

    def test_lock_fields(self, spec):
        lock = build_spec_lock(spec, NOW)
        assert lock["spec_id"] == "shop"
        assert len(lock["spec_hash"]) == 64
        assert lock["locked_at"] == "2025-03-01T00:00:00+00:00"

    def test_plan_unrelated_to_lock(self, spec):
        empty = Plan(id="p", spec_id="shop")
        report = detect_drift(spec, empty, spec_lock=build_spec_lock(spec, NOW), now=NOW)
        assert {i.kind for i in report.issues} == {"missing-task"}
