"""Tests for core/selection.py."""

from __future__ import annotations

import pytest

from fleetaudit.core.aggregator import aggregate
from fleetaudit.core.rules import evaluate
from fleetaudit.core.selection import (
    build_preview,
    select_findings,
    selection_from_findings,
    selection_from_report,
)
from fleetaudit.models.finding import ActionType, Severity
from fleetaudit.models.inventory import Inventory


class TestSelectFindings:
    def test_all(self, problem_inventory: Inventory):
        findings = select_findings(evaluate(problem_inventory), "all")
        assert all(f.selected for f in findings)

    def test_critical(self, problem_inventory: Inventory):
        findings = select_findings(evaluate(problem_inventory), "critical")
        assert all(f.selected == (f.severity == Severity.CRITICAL) for f in findings)

    def test_auto_fix(self, problem_inventory: Inventory):
        findings = select_findings(evaluate(problem_inventory), "auto-fix")
        assert sum(f.selected for f in findings) == 4

    def test_ids(self, problem_inventory: Inventory):
        findings = select_findings(evaluate(problem_inventory), "ids", ["finding-2", "finding-9"])
        assert [f.id for f in findings if f.selected] == ["finding-2", "finding-9"]

    def test_clear(self, problem_inventory: Inventory):
        findings = select_findings(select_findings(evaluate(problem_inventory), "all"), "clear")
        assert not any(f.selected for f in findings)

    def test_input_not_mutated(self, problem_inventory: Inventory):
        original = evaluate(problem_inventory)
        select_findings(original, "all")
        assert not any(f.selected for f in original)

    def test_unknown_mode(self, problem_inventory: Inventory):
        with pytest.raises(ValueError):
            select_findings(evaluate(problem_inventory), "random")


class TestSelectionFromFindings:
    def test_keeps_order(self, problem_inventory: Inventory):
        items = selection_from_findings(select_findings(evaluate(problem_inventory), "all"))
        assert [i.id for i in items] == [f"finding-{n}" for n in range(1, 15)]
        assert all(i.source == "finding" and i.finding_id == i.id for i in items)


class TestSelectionFromReport:
    def test_requirements_and_suggestions(self, problem_inventory: Inventory):
        report = aggregate(evaluate(problem_inventory))
        alpha = report.report_for("site-a")
        alpha.requirements[0].selected = True
        alpha.suggestions[0].selected = True

        items = selection_from_report(report)
        assert [i.source for i in items] == ["requirement", "suggestion"]
        assert items[0].finding_id == alpha.requirements[0].finding_id
        assert items[0].action.type == ActionType.AUTO_FIX
        assert items[1].action.type == ActionType.MANUAL
        assert items[1].finding_id is None


class TestBuildPreview:
    def test_counts(self, problem_inventory: Inventory):
        items = selection_from_findings(select_findings(evaluate(problem_inventory), "all"))
        preview = build_preview(items)
        assert preview.total == 14
        assert preview.by_action["auto-fix"] == 4
        assert sum(preview.by_action.values()) == 14
        assert preview.by_entity == {"control-center": 6, "site-a": 4, "site-b": 4}
        assert preview.can_publish is True

    def test_control_plane_only_cannot_publish(self, problem_inventory: Inventory):
        findings = select_findings(evaluate(problem_inventory), "ids", ["finding-9"])
        preview = build_preview(selection_from_findings(findings))
        assert preview.total == 1
        assert preview.can_publish is False

    def test_empty(self):
        preview = build_preview([])
        assert preview.total == 0
        assert preview.by_action == {"auto-fix": 0, "manual": 0, "review": 0}
        assert preview.can_publish is False
