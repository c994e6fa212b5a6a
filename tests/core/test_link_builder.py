"""Tests for repository link composition."""

import pytest

from tracelink.core.errors import RefNotFoundError
from tracelink.core.link_builder import (
    LinkBuilder,
    collapse_repeated_segments,
    normalize_url,
    select_ref,
)
from tracelink.core.models import RepositoryReference

FILE = "app/src/main/java/com/example/Foo.kt"


class TestSelectRef:
    """Tests for select_ref."""

    def test_commit_hash_preferred(self):
        """Test a real hash beats the branch."""
        assert select_ref("abc123", "main") == "abc123"

    @pytest.mark.parametrize("commit_hash", [None, "", "   ", "unknown"])
    def test_falls_back_to_branch(self, commit_hash):
        """Test missing or placeholder hashes use the branch."""
        assert select_ref(commit_hash, "main") == "main"


class TestCollapseRepeatedSegments:
    """Tests for repeated segment removal."""

    @pytest.mark.parametrize("path,expected", [
        ("src/main/java/java/Foo.kt", "src/main/java/Foo.kt"),
        ("src/main/src/main/java/Foo.kt", "src/main/java/Foo.kt"),
        ("app//src/main/java//Foo.kt", "app/src/main/java/Foo.kt"),
        ("\\app\\src\\Foo.kt", "app/src/Foo.kt"),
        ("app/src/main/app/src/main/kotlin/Foo.kt", "app/src/main/kotlin/Foo.kt"),
        ("com/acme/feature/api/feature/api/Foo.kt", "com/acme/feature/api/feature/api/Foo.kt"),
        (FILE, FILE),
    ])
    def test_collapse(self, path, expected):
        """Test duplicate runs and empty segments are removed."""
        assert collapse_repeated_segments(path) == expected

    def test_repeated_package_run_kept(self):
        """Test a legitimately repeated package run is not rewritten."""
        assert collapse_repeated_segments("src/main/java/x/y/x/y/Foo.kt") == "src/main/java/x/y/x/y/Foo.kt"

    def test_idempotent(self):
        """Test collapsing twice changes nothing."""
        once = collapse_repeated_segments("a/b/a/b/c/c/d")
        assert collapse_repeated_segments(once) == once


class TestNormalizeUrl:
    """Tests for normalize_url."""

    def test_keeps_scheme_separator(self):
        """Test only the scheme keeps its double slash."""
        assert normalize_url("https://bitbucket.org//acme///widgets") == "https://bitbucket.org/acme/widgets"


class TestLinkBuilder:
    """Tests for LinkBuilder.build."""

    def test_commit_pinned_link(self, reference):
        """Test a link pinned to a commit with a line anchor."""
        url = LinkBuilder().build(reference, "abc123", FILE, 42)

        assert url == f"https://bitbucket.org/acme/widgets/src/abc123/{FILE}#lines-42"

    def test_branch_link_without_commit(self, reference):
        """Test the branch is used when no commit is known."""
        url = LinkBuilder().build(reference, None, FILE, 7)

        assert url == f"https://bitbucket.org/acme/widgets/src/main/{FILE}#lines-7"

    @pytest.mark.parametrize("line", [None, -1, 0, True])
    def test_no_anchor_without_valid_line(self, reference, line):
        """Test unknown lines produce no anchor."""
        url = LinkBuilder().build(reference, "abc123", FILE, line)

        assert "#lines-" not in url
        assert url.endswith("Foo.kt")

    def test_duplicate_segments_collapsed(self, reference):
        """Test repeated path segments are collapsed in the composed link."""
        url = LinkBuilder().build(reference, "abc123", "src/main/java/java/Foo.kt", 3)

        assert url == "https://bitbucket.org/acme/widgets/src/abc123/src/main/java/Foo.kt#lines-3"

    def test_workspace_equal_to_repository(self):
        """Test a repository named like its workspace keeps both segments."""
        reference = RepositoryReference(host="bitbucket.org", workspace="acme", repository="acme", branch="src")

        url = LinkBuilder().build(reference, None, "src/Foo.kt", 1)

        assert url == "https://bitbucket.org/acme/acme/src/src/src/Foo.kt#lines-1"

    def test_no_double_slashes(self, reference):
        """Test the composed link never contains '//' after the scheme."""
        url = LinkBuilder().build(reference, "abc123", "/app//src/Foo.kt", 1)

        assert "//" not in url.split("://", 1)[1]

    def test_deterministic(self, reference):
        """Test identical inputs yield identical links."""
        builder = LinkBuilder()

        assert builder.build(reference, "abc123", FILE, 9) == builder.build(reference, "abc123", FILE, 9)

    def test_no_ref_raises(self):
        """Test an empty branch without a commit raises instead of emitting 'src//'."""
        reference = RepositoryReference(host="bitbucket.org", workspace="acme", repository="widgets", branch="")

        with pytest.raises(RefNotFoundError):
            LinkBuilder().build(reference, None, FILE, 3)
