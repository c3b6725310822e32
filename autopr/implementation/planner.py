"""
Dry-run planning.

Describes what a generate/batch call would do for each recommendation. Pure:
no CLI, no git, no GitHub, no persistence.
"""

from typing import Any

from ..errors import ValidationError
from .branch_naming import BranchNamer
from .schemas import (
    Feasibility,
    Plan,
    PlanDependency,
    PlanEstimation,
    PlanStrategy,
    Recommendation,
    parse_recommendation,
)


# =============================================================================
# HEURISTICS
# =============================================================================

BASE_MINUTES = {"beginner": 30, "intermediate": 60, "advanced": 120}

CATEGORY_MULTIPLIER = {
    "security": 1.5,
    "performance": 1.3,
    "testing": 1.2,
    "quality": 1.0,
    "documentation": 0.8,
}

APPROACHES = {
    "security": "Add validation and security checks",
    "performance": "Optimize code and add caching",
    "testing": "Add test cases and test utilities",
    "quality": "Refactor and improve code structure",
    "documentation": "Add comments and documentation",
}

FILE_ESTIMATES = {
    "security": ["middleware", "validation", "auth"],
    "performance": ["services", "components", "utils"],
    "testing": ["tests", "spec files", "test utilities"],
    "quality": ["core modules", "services", "components"],
    "documentation": ["README", "comments", "docs"],
}

TESTING_STRATEGIES = {
    "security": "Security testing and penetration testing",
    "performance": "Load testing and performance benchmarks",
    "testing": "Test the tests and coverage analysis",
    "quality": "Code review and static analysis",
    "documentation": "Documentation review and validation",
}

COMMON_TECH = {"react", "node.js", "javascript", "typescript"}


def _key(value: str | None) -> str:
    return (value or "").strip().lower()


def estimate_minutes(rec: Recommendation) -> int:
    base = BASE_MINUTES.get(_key(rec.difficulty), 60)
    return round(base * CATEGORY_MULTIPLIER.get(_key(rec.category), 1.0))


def assess_risk(rec: Recommendation) -> float:
    risk = 1.0
    if _key(rec.difficulty) == "advanced":
        risk += 2
    if _key(rec.category) == "security":
        risk += 1
    if _key(rec.priority) == "high":
        risk += 0.5
    return min(risk, 5.0)


def calculate_confidence(rec: Recommendation, tech_stack: list[str]) -> int:
    confidence = 0.8 if any(_key(t) in COMMON_TECH for t in tech_stack) else 0.6
    if _key(rec.difficulty) == "beginner":
        confidence += 0.1
    elif _key(rec.difficulty) == "advanced":
        confidence -= 0.1
    return round(confidence * 100)


def identify_dependencies(rec: Recommendation, others: list[Recommendation]) -> list[PlanDependency]:
    """Security work comes before everything else; high priority before low."""
    deps = []
    for other in others:
        if other is rec or (rec.id is not None and other.id == rec.id):
            continue
        before_security = _key(rec.category) != "security" and _key(other.category) == "security"
        before_priority = _key(rec.priority) == "low" and _key(other.priority) == "high"
        if before_security or before_priority:
            deps.append(PlanDependency(id=other.id, title=other.title, reason="Priority/Category dependency"))
    return deps


def identify_prerequisites(rec: Recommendation) -> list[str]:
    prerequisites = []
    if _key(rec.category) == "testing":
        prerequisites.append("Testing framework must be installed")
    if _key(rec.category) == "security":
        prerequisites.append("Security dependencies must be available")
    return prerequisites


def assess_feasibility(rec: Recommendation, risk: float) -> Feasibility:
    issues = []
    if not rec.description:
        issues.append("No description provided; the generator will work from the title only")
    if not rec.target_files:
        issues.append("No target files listed; the generator must locate them itself")

    if risk <= 2:
        assessment = "high"
    elif risk <= 3.5:
        assessment = "medium"
    else:
        assessment = "low"
    return Feasibility(feasible=True, assessment=assessment, issues=issues)


# =============================================================================
# PLAN
# =============================================================================

def _invalid_plan(order: int, raw: Any, error: str) -> Plan:
    return Plan(
        order=order,
        recommendation=raw if isinstance(raw, dict) else {"value": raw},
        feasibility=Feasibility(feasible=False, assessment="invalid", issues=[error]),
    )


def build_plans(project_name: str, implementations: list[Any], tech_stack: list[str] | None = None) -> list[Plan]:
    """One Plan per input element, in input order."""
    tech_stack = tech_stack or []
    namer = BranchNamer(project_name)

    parsed: list[tuple[int, Any, Recommendation | None, str | None]] = []
    for order, raw in enumerate(implementations, 1):
        try:
            parsed.append((order, raw, parse_recommendation(raw), None))
        except ValidationError as e:
            parsed.append((order, raw, None, e.message))

    valid = [rec for _, _, rec, _ in parsed if rec is not None]

    plans = []
    for order, raw, rec, error in parsed:
        if rec is None:
            plans.append(_invalid_plan(order, raw, error))
            continue

        category = _key(rec.category)
        risk = assess_risk(rec)
        plans.append(Plan(
            order=order,
            recommendation=rec.model_dump(by_alias=True, exclude_none=True),
            branch=namer.claim(rec.title),
            files_expected_to_change=rec.target_files or list(FILE_ESTIMATES.get(category, ["main application files"])),
            changes=rec.steps or [rec.description or APPROACHES.get(category, rec.title)],
            estimation=PlanEstimation(
                time_minutes=estimate_minutes(rec),
                complexity=rec.difficulty or "Intermediate",
                risk_level=risk,
                confidence=calculate_confidence(rec, tech_stack),
            ),
            strategy=PlanStrategy(
                approach=APPROACHES.get(category, "Implement feature according to requirements"),
                testing_strategy=TESTING_STRATEGIES.get(category, "Unit and integration testing"),
                rollback_plan=(
                    "Create backup branch, implement feature flags, and prepare revert commits "
                    f"for {rec.title}"
                ),
            ),
            dependencies=identify_dependencies(rec, valid),
            prerequisites=identify_prerequisites(rec),
            feasibility=assess_feasibility(rec, risk),
        ))

    # Security first, then lowest risk
    ranked = sorted(
        (p for p in plans if p.feasibility.feasible),
        key=lambda p: (
            0 if _key(p.recommendation.get("category")) == "security" else 1,
            p.estimation.risk_level,
            p.order,
        ),
    )
    for position, plan in enumerate(ranked, 1):
        plan.suggested_order = position

    return plans
