"""Deterministic git branch names for implementation jobs"""

import hashlib
import re
import unicodedata
from typing import Iterable

BRANCH_PREFIX = "ai-implementation"
MAX_SLUG_LENGTH = 40


def slugify(text: str | None, max_length: int = MAX_SLUG_LENGTH, fallback: str = "change") -> str:
    """
    Convert text to a lowercase ASCII slug that is safe inside a git ref.

    >>> slugify("Add Input Validation!")
    'add-input-validation'
    """
    if not text:
        return fallback

    text = unicodedata.normalize("NFKD", text)
    text = text.encode("ascii", "ignore").decode("ascii").lower()
    text = re.sub(r"[^a-z0-9]+", "-", text).strip("-")

    if len(text) > max_length:
        text = text[:max_length].rstrip("-")

    return text or fallback


def branch_name_for(project_name: str, title: str) -> str:
    """Base branch name for one recommendation, before disambiguation."""
    return f"{BRANCH_PREFIX}/{slugify(project_name, fallback='project')}/{slugify(title)}"


def shared_branch_name(project_name: str, titles: Iterable[str]) -> str:
    """Single branch used when a batch lands on one pull request."""
    digest = hashlib.sha1("\n".join(titles).encode("utf-8")).hexdigest()[:8]
    return f"{BRANCH_PREFIX}/{slugify(project_name, fallback='project')}/batch-{digest}"


class BranchNamer:
    """
    Hands out branch names for one batch.

    The same title always yields the same base name; repeats within the batch
    get a numeric suffix (-2, -3, ...) so no two jobs share a branch.
    """

    def __init__(self, project_name: str):
        self.project_name = project_name
        self._taken: set[str] = set()

    def claim(self, title: str) -> str:
        base = branch_name_for(self.project_name, title)
        candidate = base
        counter = 2
        while candidate in self._taken:
            candidate = f"{base}-{counter}"
            counter += 1
        self._taken.add(candidate)
        return candidate
