"""
AI analysis of a repository.

Produces the scores, recommendations, and tech stack notes that feed the
implementation pipeline (and the .gemini/GEMINI.md analysis block).
"""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..errors import UpstreamError
from .repo_snapshot import RepoSnapshot, remote_head, snapshot_repository

logger = logging.getLogger(__name__)

DEFAULT_SCORE = 70
SCORE_FIELDS = ("overall_score", "code_quality", "maintainability", "security", "performance", "documentation")


# =============================================================================
# SCHEMAS
# =============================================================================

class _Camel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AnalyzeRequest(_Camel):
    repo_url: str | None = None
    project_name: str | None = None
    tech_stack: list[str] = Field(default_factory=list)
    difficulty: str = "intermediate"
    category: str = "Web Development"
    force_regenerate: bool = False


class TechStackAnalysis(_Camel):
    modern: list[str] = Field(default_factory=list)
    stable: list[str] = Field(default_factory=list)
    emerging: list[str] = Field(default_factory=list)


class AnalysisReport(_Camel):
    repo_url: str | None = None
    project_name: str | None = None
    commit_sha: str | None = Field(None, description="Commit the analysis was made at")
    overall_score: int = Field(DEFAULT_SCORE, ge=0, le=100)
    code_quality: int = Field(DEFAULT_SCORE, ge=0, le=100)
    maintainability: int = Field(DEFAULT_SCORE, ge=0, le=100)
    security: int = Field(DEFAULT_SCORE, ge=0, le=100)
    performance: int = Field(DEFAULT_SCORE, ge=0, le=100)
    documentation: int = Field(DEFAULT_SCORE, ge=0, le=100)
    recommendations: list[dict[str, Any]] = Field(
        default_factory=list, description="Recommendation-shaped objects, ready for /implementation"
    )
    strengths: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    tech_stack_analysis: TechStackAnalysis = Field(default_factory=TechStackAnalysis)
    analyzed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    cached: bool = False
    cache_status: str | None = Field(
        None, description="fresh | up_to_date | valid_assumed | new_commits | force_regenerated"
    )


# =============================================================================
# NORMALIZATION
# =============================================================================

def clamp_score(value: Any) -> int:
    """Coerce to an int in [0, 100]; missing, zero, or non-numeric values fall back to the default."""
    try:
        number = int(round(float(value)))
    except (TypeError, ValueError):
        return DEFAULT_SCORE
    if number == 0:
        return DEFAULT_SCORE
    return min(100, max(0, number))


def _as_recommendation(item: Any, index: int) -> dict[str, Any] | None:
    if isinstance(item, str) and item.strip():
        return {"id": f"rec-{index}", "title": item.strip(), "description": item.strip()}
    if isinstance(item, dict) and str(item.get("title") or "").strip():
        rec = dict(item)
        rec.setdefault("id", f"rec-{index}")
        return rec
    return None


def _strings(items: Any) -> list[str]:
    if not isinstance(items, list):
        return []
    return [str(i) for i in items if str(i).strip()]


def normalize_analysis(raw: dict[str, Any]) -> AnalysisReport:
    """Apply defaults and clamping to an LLM response."""
    camel = {name: to_camel(name) for name in SCORE_FIELDS}
    scores = {name: clamp_score(raw.get(camel[name], raw.get(name))) for name in SCORE_FIELDS}

    recommendations = []
    for i, item in enumerate(raw.get("recommendations") or [], 1):
        rec = _as_recommendation(item, i)
        if rec is not None:
            recommendations.append(rec)

    stack = raw.get("techStackAnalysis") or raw.get("tech_stack_analysis") or {}
    if not isinstance(stack, dict):
        stack = {}

    return AnalysisReport(
        **scores,
        recommendations=recommendations,
        strengths=_strings(raw.get("strengths")),
        improvements=_strings(raw.get("improvements")),
        tech_stack_analysis=TechStackAnalysis(
            modern=_strings(stack.get("modern")),
            stable=_strings(stack.get("stable")),
            emerging=_strings(stack.get("emerging")),
        ),
    )


def parse_llm_json(text: str) -> dict[str, Any]:
    cleaned = (text or "").strip().replace("```json", "").replace("```", "").strip()
    data = json.loads(cleaned)
    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object")
    return data


# =============================================================================
# PROMPT
# =============================================================================

def build_analysis_prompt(
    snapshot: RepoSnapshot,
    project_name: str,
    tech_stack: list[str],
    difficulty: str,
    category: str,
) -> str:
    files_summary = "\n---\n".join(
        f"File: {path}\nLines: {content.count(chr(10)) + 1}\nContent preview:\n{content[:500]}...\n"
        for path, content in snapshot.top_files(6)
    )
    stack = ", ".join(tech_stack) if tech_stack else "unknown"
    languages = ", ".join(snapshot.languages) or "unknown"

    return f"""Analyze this {category} project "{project_name}" with tech stack: {stack} (Difficulty: {difficulty}).

Detected languages: {languages}
Dependencies: {", ".join(snapshot.dependencies[:30]) or "none found"}

Project Structure:
{snapshot.structure()}

Code Files ({len(snapshot.files)} files, {snapshot.total_lines} lines):
{files_summary}

Respond with a JSON object in exactly this format:
{{
  "overallScore": <number 0-100>,
  "codeQuality": <number 0-100>,
  "maintainability": <number 0-100>,
  "security": <number 0-100>,
  "performance": <number 0-100>,
  "documentation": <number 0-100>,
  "recommendations": [
    {{
      "title": "Short imperative title",
      "description": "What to change and why",
      "category": "Security" | "Performance" | "Testing" | "Quality" | "Documentation",
      "priority": "High" | "Medium" | "Low",
      "difficulty": "Beginner" | "Intermediate" | "Advanced",
      "implementation": {{"files": ["path/to/file"], "steps": ["step 1", "step 2"]}}
    }}
  ],
  "strengths": ["specific strength"],
  "improvements": ["specific improvement"],
  "techStackAnalysis": {{
    "modern": ["modern technologies used"],
    "stable": ["stable technologies used"],
    "emerging": ["emerging technologies used"]
  }}
}}

Give up to 5 recommendations, strengths, and improvements. Focus on architecture,
error handling, security vulnerabilities, performance bottlenecks, documentation,
test coverage, and dependency management.

Return ONLY the JSON object, no other text or markdown formatting."""


# =============================================================================
# ANALYZER
# =============================================================================

class RepositoryAnalyzer:
    """
    Clones a repository and asks Gemini for a structured quality report.

    With a store, reports are cached per commit: a repository whose remote
    HEAD has not moved gets its previous report back without a clone or an
    LLM call. When HEAD cannot be read the latest report is assumed valid.
    """

    def __init__(
        self,
        api_key: str | None,
        model: str = "gemini-2.0-flash",
        clone_timeout: int = 120,
        client=None,
        store=None,
    ):
        self.api_key = api_key
        self.model = model
        self.clone_timeout = clone_timeout
        self.store = store
        self._client = client

    def _get_client(self):
        if self._client is None:
            from google import genai

            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def call_gemini(self, prompt: str) -> dict[str, Any]:
        """Two attempts; raises UpstreamError when both fail."""
        if not self.api_key and self._client is None:
            raise UpstreamError("GEMINI_API_KEY is not configured", service="gemini")

        client = self._get_client()
        last_error = None
        for attempt in range(2):
            try:
                response = client.models.generate_content(
                    model=self.model,
                    contents=prompt,
                    config={"http_options": {"timeout": 60_000}},
                )
                return parse_llm_json(response.text)
            except Exception as e:
                last_error = e
                logger.warning(f"Gemini analysis error (attempt {attempt + 1}/2): {e}")
                if attempt == 0:
                    time.sleep(1)

        raise UpstreamError(f"AI analysis failed: {last_error}", service="gemini")

    def analyze_snapshot(
        self,
        snapshot: RepoSnapshot,
        project_name: str,
        tech_stack: list[str] | None = None,
        difficulty: str = "intermediate",
        category: str = "Web Development",
    ) -> AnalysisReport:
        prompt = build_analysis_prompt(snapshot, project_name, tech_stack or [], difficulty, category)
        report = normalize_analysis(self.call_gemini(prompt))
        logger.info(
            f"Analysis for {project_name}: overall={report.overall_score}, "
            f"recommendations={len(report.recommendations)}"
        )
        return report

    def analyze(
        self,
        repo_url: str,
        project_name: str,
        tech_stack: list[str] | None = None,
        difficulty: str = "intermediate",
        category: str = "Web Development",
        force_regenerate: bool = False,
    ) -> AnalysisReport:
        status = "fresh"
        if force_regenerate:
            status = "force_regenerated"
        elif self.store is not None:
            previous = self.store.latest(repo_url)
            if previous is not None:
                head = remote_head(repo_url, timeout=self.clone_timeout)
                if head is None:
                    logger.info(f"Cannot read HEAD of {repo_url}, using analysis from {previous.analyzed_at}")
                    return previous.model_copy(update={"cached": True, "cache_status": "valid_assumed"})
                cached = self.store.find(repo_url, head)
                if cached is not None:
                    logger.info(f"Using cached analysis of {repo_url} at {head[:8]}")
                    return cached.model_copy(update={"cached": True, "cache_status": "up_to_date"})
                status = "new_commits"

        snapshot = snapshot_repository(repo_url, timeout=self.clone_timeout)
        report = self.analyze_snapshot(snapshot, project_name, tech_stack, difficulty, category)
        report.repo_url = repo_url
        report.project_name = project_name
        report.commit_sha = snapshot.commit_sha
        report.cache_status = status
        if self.store is not None:
            self.store.save(report)
        return report

    def latest(self, repo_url: str) -> AnalysisReport | None:
        return self.store.latest(repo_url) if self.store is not None else None

    def history(self, repo_url: str, limit: int = 10) -> list[AnalysisReport]:
        return self.store.history(repo_url, limit=limit) if self.store is not None else []
