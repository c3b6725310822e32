"""Tests for branch naming"""

from autopr.implementation.branch_naming import (
    BranchNamer,
    branch_name_for,
    shared_branch_name,
    slugify,
)


class TestSlugify:
    def test_basic(self):
        assert slugify("Add Input Validation!") == "add-input-validation"

    def test_strips_accents_and_symbols(self):
        assert slugify("  Café / Résumé: v2  ") == "cafe-resume-v2"

    def test_truncates_without_trailing_dash(self):
        slug = slugify("a" * 39 + " bcd", max_length=40)
        assert len(slug) <= 40
        assert not slug.endswith("-")

    def test_fallback_for_empty(self):
        assert slugify("") == "change"
        assert slugify("!!!") == "change"
        assert slugify(None, fallback="project") == "project"


class TestBranchNames:
    def test_branch_name_for(self):
        assert branch_name_for("My App", "Add Tests") == "ai-implementation/my-app/add-tests"

    def test_deterministic(self):
        assert branch_name_for("My App", "Add Tests") == branch_name_for("My App", "Add Tests")

    def test_namer_disambiguates_repeats(self):
        namer = BranchNamer("My App")
        names = [namer.claim("Fix bug"), namer.claim("Fix bug"), namer.claim("Other"), namer.claim("Fix bug")]
        assert names == [
            "ai-implementation/my-app/fix-bug",
            "ai-implementation/my-app/fix-bug-2",
            "ai-implementation/my-app/other",
            "ai-implementation/my-app/fix-bug-3",
        ]
        assert len(set(names)) == len(names)

    def test_new_namer_starts_fresh(self):
        assert BranchNamer("My App").claim("Fix bug") == BranchNamer("My App").claim("Fix bug")

    def test_shared_branch_name(self):
        name = shared_branch_name("My App", ["One", "Two"])
        assert name.startswith("ai-implementation/my-app/batch-")
        assert len(name.rsplit("-", 1)[1]) == 8
        assert name == shared_branch_name("My App", ["One", "Two"])
        assert name != shared_branch_name("My App", ["Two", "One"])
