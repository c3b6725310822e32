"""Prompt sent to the Gemini CLI for one recommendation"""

import json
from typing import Any

from .schemas import Recommendation, ValidationReport


def _analysis_excerpt(analysis_data: dict[str, Any] | None) -> str:
    if not analysis_data:
        return "Not available."

    scores = {
        key: analysis_data.get(key)
        for key in ("overallScore", "codeQuality", "security", "performance", "maintainability")
        if analysis_data.get(key) is not None
    }
    improvements = analysis_data.get("improvements") or []
    parts = []
    if scores:
        parts.append("Scores: " + ", ".join(f"{k}={v}" for k, v in scores.items()))
    if isinstance(improvements, list) and improvements:
        parts.append("Known weak spots: " + "; ".join(str(i) for i in improvements[:5]))
    return "\n".join(parts) or "Not available."


def build_implementation_prompt(
    recommendation: Recommendation,
    tech_stack: list[str] | None = None,
    analysis_data: dict[str, Any] | None = None,
) -> str:
    """
    Build the one-shot instruction for the code-generation CLI.

    Analysis data only adds context to the instructions; it never changes
    which steps the pipeline runs.
    """
    details = recommendation.implementation or {}
    files = recommendation.target_files
    steps = recommendation.steps
    extra = {k: v for k, v in details.items() if k not in ("files", "steps")}

    lines = [
        "Implement the following code change in this repository by editing files directly.",
        "",
        f"TASK: {recommendation.title}",
        "",
        f"DESCRIPTION: {recommendation.description or 'No further description provided.'}",
        "",
        f"CATEGORY: {recommendation.category or 'General'}",
        f"PRIORITY: {recommendation.priority or 'Medium'}",
        f"DIFFICULTY: {recommendation.difficulty or 'Intermediate'}",
        f"TECH STACK: {', '.join(tech_stack) if tech_stack else 'detect from the repository'}",
    ]

    if files:
        lines += ["", "FILES TO CHANGE:"] + [f"- {f}" for f in files]
    if steps:
        lines += ["", "STEPS:"] + [f"{i}. {s}" for i, s in enumerate(steps, 1)]
    if extra:
        lines += ["", "ADDITIONAL DETAILS:", json.dumps(extra, indent=2, default=str)]

    lines += [
        "",
        "PROJECT ANALYSIS CONTEXT:",
        _analysis_excerpt(analysis_data),
        "",
        "REQUIREMENTS:",
        "1. Detect the project's language and framework first and follow its conventions",
        "2. Follow the rules in .gemini/GEMINI.md",
        "3. Make minimal, focused changes; preserve existing behavior",
        "4. Add error handling and input validation where relevant",
        "5. Do not modify anything under .gemini/",
        "6. Do not run git commands; committing is handled for you",
        "",
        "If you cannot edit files directly, print every changed file in full using:",
        "",
        "### path/to/file.ext",
        "```language",
        "<complete file content>",
        "```",
    ]
    return "\n".join(lines)


def build_commit_message(recommendation: Recommendation, branch: str) -> str:
    return "\n".join([
        f"AI Implementation: {recommendation.title}",
        "",
        recommendation.description or "",
        "",
        f"Category: {recommendation.category or 'General'}",
        f"Priority: {recommendation.priority or 'Medium'}",
        "Generated by: Gemini CLI",
        f"Branch: {branch}",
    ]).strip() + "\n"


def build_pull_request_body(
    recommendations: list[Recommendation],
    branch: str,
    modified_files: list[str],
    project_name: str,
    validation: ValidationReport | None = None,
) -> str:
    lines = ["## Automated Code Implementation", "", f"**Project**: {project_name}", f"**Branch**: `{branch}`", ""]
    for rec in recommendations:
        lines += [
            f"### {rec.title}",
            "",
            rec.description or "_No description provided._",
            "",
            f"- **Category**: {rec.category or 'General'}",
            f"- **Priority**: {rec.priority or 'Medium'}",
            "",
        ]
    if modified_files:
        lines += ["### Modified files", ""] + [f"- `{f}`" for f in modified_files] + [""]
    if validation is not None:
        lines += [
            "### Validation",
            "",
            f"- **Project type**: {validation.project_type}",
            f"- **Linting**: {validation.linting}",
            f"- **Tests**: {validation.tests}",
        ]
        if validation.note:
            lines.append(f"- **Note**: {validation.note}")
        lines.append("")
    lines.append("This PR was generated automatically by the Gemini CLI. Review before merging.")
    return "\n".join(lines)
