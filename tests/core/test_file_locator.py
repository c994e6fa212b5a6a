"""Tests for dynamic file discovery."""

import pytest

from tracelink.core.errors import UpstreamUnavailableError
from tracelink.core.file_locator import (
    BrowseBudget,
    DirectoryBrowseStrategy,
    DiscoveryQuery,
    DiscoveryStrategy,
    FileLocator,
    exact_matches,
)
from tracelink.core.models import DirectoryEntry, DiscoveryResult

TARGET = "app/src/main/java/com/example/MainActivity.kt"


def tree(listing):
    """browse_directory side effect serving a fixed directory tree."""
    def _browse(workspace, repository, ref, path=""):
        return listing.get(path, [])
    return _browse


def d(path):
    return DirectoryEntry(path=path, is_directory=True)


def f(path):
    return DirectoryEntry(path=path, is_directory=False)


class RecordingStrategy(DiscoveryStrategy):
    """Strategy returning a fixed result and counting invocations."""

    def __init__(self, name, paths=(), error=None):
        self.name = name
        self.paths = tuple(paths)
        self.error = error
        self.calls = 0

    async def discover(self, query):
        self.calls += 1
        if self.error:
            raise self.error
        return DiscoveryResult(self.name, self.paths)


class TestHelpers:
    """Tests for discovery helpers."""

    def test_exact_matches(self):
        """Test only exact basename matches are kept."""
        paths = [TARGET, "app/src/test/MainActivityTest.kt", "lib/MainActivity.kt.bak"]

        assert exact_matches(paths, "MainActivity.kt") == (TARGET,)

    def test_query_package_path(self):
        """Test the package hint becomes a path fragment."""
        query = DiscoveryQuery("acme", "widgets", "main", "MainActivity.kt", "com.example")

        assert query.package_path == "com/example"
        assert DiscoveryQuery("acme", "widgets", "main", "Foo.kt").package_path is None

    def test_browse_budget(self):
        """Test the budget hands out exactly max_calls calls."""
        budget = BrowseBudget(2)

        assert budget.consume()
        assert budget.consume()
        assert not budget.consume()
        assert budget.exhausted
        assert budget.remaining == 0
        assert budget.used == 2


class TestFileLocator:
    """Tests for FileLocator strategy ordering."""

    @pytest.mark.asyncio
    async def test_repository_search_hit(self, mock_bitbucket):
        """Test a repository search hit stops discovery."""
        mock_bitbucket.search_code.return_value = [TARGET, "app/src/test/MainActivityTest.kt"]
        locator = FileLocator.default(mock_bitbucket, budget=BrowseBudget(10))

        path = await locator.locate("acme", "widgets", "main", "MainActivity.kt", "com.example")

        assert path == TARGET
        mock_bitbucket.search_code.assert_awaited_once_with(
            "acme", "MainActivity.kt", repository="widgets", path="com/example"
        )
        mock_bitbucket.browse_directory.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_workspace_search_fallback(self, mock_bitbucket):
        """Test the workspace search runs when the repository search is empty."""
        mock_bitbucket.search_code.side_effect = [[], ["other/MainActivity.kt"]]
        locator = FileLocator.default(mock_bitbucket, budget=BrowseBudget(10))

        result = await locator.discover("acme", "widgets", "main", "MainActivity.kt")

        assert result.strategy == "workspace_search"
        assert result.best == "other/MainActivity.kt"
        assert mock_bitbucket.search_code.await_count == 2
        mock_bitbucket.browse_directory.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_strategy_is_skipped(self, mock_bitbucket):
        """Test an upstream failure moves on to the next strategy."""
        mock_bitbucket.search_code.side_effect = [UpstreamUnavailableError("search disabled"), [TARGET]]
        locator = FileLocator.default(mock_bitbucket, budget=BrowseBudget(10))

        assert await locator.locate("acme", "widgets", "main", "MainActivity.kt") == TARGET

    @pytest.mark.asyncio
    async def test_directory_browse_fallback(self, mock_bitbucket):
        """Test the directory walk finds the file when searches come up empty."""
        mock_bitbucket.browse_directory.side_effect = tree({
            "": [f("README.md"), d("app")],
            "app": [d("app/src")],
            "app/src": [f("app/src/MainActivity.kt")],
        })
        locator = FileLocator.default(mock_bitbucket, budget=BrowseBudget(10))

        result = await locator.discover("acme", "widgets", "main", "MainActivity.kt")

        assert result.strategy == "directory_browse"
        assert result.best == "app/src/MainActivity.kt"

    @pytest.mark.asyncio
    async def test_nothing_found(self, mock_bitbucket):
        """Test an empty result when every strategy is exhausted."""
        locator = FileLocator.default(mock_bitbucket, budget=BrowseBudget(10))

        result = await locator.discover("acme", "widgets", "main", "Missing.kt")

        assert not result
        assert result.best is None
        assert result.strategy == "none"

    @pytest.mark.asyncio
    async def test_first_non_empty_short_circuits(self):
        """Test strategies after the first hit are never invoked."""
        first = RecordingStrategy("first")
        second = RecordingStrategy("second", paths=["a/Foo.kt"])
        third = RecordingStrategy("third", paths=["b/Foo.kt"])
        locator = FileLocator([first, second, third])

        assert await locator.locate("acme", "widgets", "main", "Foo.kt") == "a/Foo.kt"
        assert (first.calls, second.calls, third.calls) == (1, 1, 0)

    @pytest.mark.asyncio
    async def test_error_then_hit(self):
        """Test a failing strategy is treated as empty."""
        failing = RecordingStrategy("failing", error=UpstreamUnavailableError("503", status_code=503))
        working = RecordingStrategy("working", paths=["a/Foo.kt"])
        locator = FileLocator([failing, working])

        result = await locator.discover("acme", "widgets", "main", "Foo.kt")

        assert result.strategy == "working"
        assert failing.calls == 1


class TestDirectoryBrowseStrategy:
    """Tests for the bounded directory walk."""

    @pytest.mark.asyncio
    async def test_files_checked_before_subdirectories(self, mock_bitbucket):
        """Test a file in the current directory wins over deeper matches."""
        mock_bitbucket.browse_directory.side_effect = tree({
            "": [d("deep"), f("Foo.kt")],
            "deep": [f("deep/Foo.kt")],
        })
        strategy = DirectoryBrowseStrategy(mock_bitbucket, BrowseBudget(10))

        result = await strategy.discover(DiscoveryQuery("acme", "widgets", "main", "Foo.kt"))

        assert result.best == "Foo.kt"
        assert mock_bitbucket.browse_directory.await_count == 1

    @pytest.mark.asyncio
    async def test_budget_limits_calls(self, mock_bitbucket):
        """Test the walk stops once the browse budget is spent."""
        mock_bitbucket.browse_directory.side_effect = tree({
            "": [d("a")],
            "a": [d("a/b")],
            "a/b": [f("a/b/Foo.kt")],
        })
        budget = BrowseBudget(2)
        strategy = DirectoryBrowseStrategy(mock_bitbucket, budget)

        result = await strategy.discover(DiscoveryQuery("acme", "widgets", "main", "Foo.kt"))

        assert not result
        assert mock_bitbucket.browse_directory.await_count == 2
        assert budget.exhausted

    @pytest.mark.asyncio
    async def test_depth_limit(self, mock_bitbucket):
        """Test directories deeper than max_depth are not listed."""
        mock_bitbucket.browse_directory.side_effect = tree({
            "": [d("a")],
            "a": [d("a/b")],
            "a/b": [f("a/b/Foo.kt")],
        })
        strategy = DirectoryBrowseStrategy(mock_bitbucket, BrowseBudget(100), max_depth=1)

        result = await strategy.discover(DiscoveryQuery("acme", "widgets", "main", "Foo.kt"))

        assert not result
        assert mock_bitbucket.browse_directory.await_count == 2

    @pytest.mark.asyncio
    async def test_budget_shared_across_queries(self, mock_bitbucket):
        """Test one budget caps listings across several lookups."""
        mock_bitbucket.browse_directory.side_effect = tree({"": [d("a")], "a": []})
        budget = BrowseBudget(3)
        strategy = DirectoryBrowseStrategy(mock_bitbucket, budget)

        await strategy.discover(DiscoveryQuery("acme", "widgets", "main", "One.kt"))
        await strategy.discover(DiscoveryQuery("acme", "widgets", "main", "Two.kt"))

        assert mock_bitbucket.browse_directory.await_count == 3
        assert budget.exhausted
