"""Tests for dry-run planning"""

from autopr.implementation.planner import build_plans


def rec(title, **fields):
    return {"id": title.lower().replace(" ", "-"), "title": title, **fields}


class TestEstimation:
    def test_security_advanced_high(self):
        [plan] = build_plans("App", [rec("Harden auth", category="Security", difficulty="Advanced", priority="High")],
                             tech_stack=["React"])

        assert plan.estimation.time_minutes == 180
        assert plan.estimation.risk_level == 4.5
        assert plan.estimation.confidence == 70
        assert plan.estimation.complexity == "Advanced"
        assert plan.feasibility.feasible is True
        assert plan.feasibility.assessment == "low"
        assert plan.prerequisites == ["Security dependencies must be available"]
        assert plan.strategy.approach == "Add validation and security checks"
        assert plan.strategy.testing_strategy == "Security testing and penetration testing"
        assert plan.strategy.rollback_plan.endswith("for Harden auth")

    def test_defaults_for_unknown_category(self):
        [plan] = build_plans("App", [rec("Something")])

        assert plan.estimation.time_minutes == 60
        assert plan.estimation.risk_level == 1
        assert plan.estimation.confidence == 60
        assert plan.feasibility.assessment == "high"
        assert plan.strategy.approach == "Implement feature according to requirements"
        assert plan.files_expected_to_change == ["main application files"]

    def test_beginner_documentation(self):
        [plan] = build_plans("App", [rec("Docs", category="Documentation", difficulty="Beginner")])
        assert plan.estimation.time_minutes == 24
        assert plan.estimation.confidence == 70

    def test_explicit_files_and_steps_win(self):
        [plan] = build_plans("App", [rec(
            "Cache", category="Performance",
            implementation={"files": ["api/cache.py"], "steps": ["Add LRU cache", "Wire it in"]},
        )])
        assert plan.files_expected_to_change == ["api/cache.py"]
        assert plan.changes == ["Add LRU cache", "Wire it in"]


class TestOrdering:
    def test_dependencies(self):
        plans = build_plans("App", [
            rec("Refactor", category="Quality", priority="Low"),
            rec("Fix XSS", category="Security", priority="Medium"),
            rec("Speed up", category="Performance", priority="High"),
        ])

        refactor_deps = [d.title for d in plans[0].dependencies]
        assert refactor_deps == ["Fix XSS", "Speed up"]
        assert plans[1].dependencies == []
        assert [d.title for d in plans[2].dependencies] == ["Fix XSS"]
        assert plans[0].dependencies[0].reason == "Priority/Category dependency"

    def test_suggested_order_security_first_then_risk(self):
        plans = build_plans("App", [
            rec("Big rewrite", category="Quality", difficulty="Advanced"),
            rec("Small tweak", category="Quality", difficulty="Beginner"),
            rec("Fix XSS", category="Security"),
        ])
        assert [p.suggested_order for p in plans] == [3, 2, 1]
        assert [p.order for p in plans] == [1, 2, 3]


class TestInvalidItems:
    def test_invalid_items_reported_in_place(self):
        plans = build_plans("App", [rec("Good"), {"description": "no title"}, 42])

        assert len(plans) == 3
        assert plans[0].feasibility.feasible is True
        for plan in plans[1:]:
            assert plan.feasibility.feasible is False
            assert plan.feasibility.assessment == "invalid"
            assert plan.feasibility.issues
            assert plan.branch is None
            assert plan.suggested_order is None
        assert plans[2].recommendation == {"value": 42}

    def test_branches_are_unique(self):
        plans = build_plans("App", [rec("Same"), rec("Same")])
        assert plans[0].branch != plans[1].branch
