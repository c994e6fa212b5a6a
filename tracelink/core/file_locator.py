"""
Dynamic file discovery.

Used when the static path guess is missing or unreliable, e.g. when an
application's package layout does not mirror the repository's directories.

Strategies run in a fixed order and the first non-empty result wins:
1. Code search scoped to the repository
2. Code search across the whole workspace
3. Recursive directory browse from the repository root

A strategy that fails upstream counts as empty so the next one still runs.
Strategies never retry.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

import structlog

from tracelink.core.errors import UpstreamUnavailableError
from tracelink.core.models import DiscoveryResult

logger = structlog.get_logger(__name__)

MAX_BROWSE_DEPTH = 10


@dataclass(frozen=True)
class DiscoveryQuery:
    """What to look for and where."""
    workspace: str
    repository: str
    branch: str
    filename: str
    package_hint: str | None = None

    @property
    def package_path(self) -> str | None:
        if not self.package_hint:
            return None
        return self.package_hint.strip(".").replace(".", "/") or None


class BrowseBudget:
    """Caps directory listings across one trace."""

    def __init__(self, max_calls: int = 100):
        self.max_calls = max_calls
        self.used = 0

    @property
    def remaining(self) -> int:
        return max(0, self.max_calls - self.used)

    @property
    def exhausted(self) -> bool:
        return self.used >= self.max_calls

    def consume(self) -> bool:
        """Take one call from the budget; False if none is left."""
        if self.exhausted:
            return False
        self.used += 1
        return True


def _basename(path: str) -> str:
    return path.rstrip("/").rsplit("/", 1)[-1]


def exact_matches(paths: list[str], filename: str) -> tuple[str, ...]:
    return tuple(path for path in paths if _basename(path) == filename)


class DiscoveryStrategy(ABC):
    """Base class for file discovery strategies."""

    name: str = "strategy"

    @abstractmethod
    async def discover(self, query: DiscoveryQuery) -> DiscoveryResult:
        """Return candidate paths, best first; empty when nothing matched."""
        pass


class RepositorySearchStrategy(DiscoveryStrategy):
    """Code search restricted to one repository, narrowed by package path."""

    name = "repository_search"

    def __init__(self, client):
        self.client = client

    async def discover(self, query: DiscoveryQuery) -> DiscoveryResult:
        paths = await self.client.search_code(
            query.workspace,
            query.filename,
            repository=query.repository,
            path=query.package_path,
        )
        return DiscoveryResult(self.name, exact_matches(paths, query.filename))


class WorkspaceSearchStrategy(DiscoveryStrategy):
    """Code search across every repository in the workspace."""

    name = "workspace_search"

    def __init__(self, client):
        self.client = client

    async def discover(self, query: DiscoveryQuery) -> DiscoveryResult:
        paths = await self.client.search_code(query.workspace, query.filename)
        return DiscoveryResult(self.name, exact_matches(paths, query.filename))


class DirectoryBrowseStrategy(DiscoveryStrategy):
    """Depth-first directory walk from the repository root.

    Files of a directory are checked before its subdirectories. Recursion stops
    at ``max_depth`` and whenever the shared browse budget runs out.
    """

    name = "directory_browse"

    def __init__(self, client, budget: BrowseBudget | None = None, max_depth: int = MAX_BROWSE_DEPTH):
        self.client = client
        self.budget = budget or BrowseBudget()
        self.max_depth = max_depth
        self.log = logger.bind(component="directory_browse")

    async def discover(self, query: DiscoveryQuery) -> DiscoveryResult:
        found = await self._walk(query, "", 0)
        return DiscoveryResult(self.name, (found,) if found else ())

    async def _walk(self, query: DiscoveryQuery, path: str, depth: int) -> str | None:
        if depth > self.max_depth:
            return None
        if not self.budget.consume():
            self.log.warning(
                "Browse budget exhausted",
                filename=query.filename,
                max_calls=self.budget.max_calls,
            )
            return None

        entries = await self.client.browse_directory(
            query.workspace, query.repository, query.branch, path
        )

        for entry in entries:
            if not entry.is_directory and entry.name == query.filename:
                return entry.path

        for entry in entries:
            if entry.is_directory:
                found = await self._walk(query, entry.path, depth + 1)
                if found:
                    return found
                if self.budget.exhausted:
                    return None
        return None


class FileLocator:
    """Runs discovery strategies in order and returns the first hit.

    Usage:
        locator = FileLocator.default(client, budget=BrowseBudget(100))
        path = await locator.locate("acme", "widgets", "main", "MainActivity.kt", "com.example.app")
    """

    def __init__(self, strategies: list[DiscoveryStrategy]):
        self.strategies = list(strategies)
        self.log = logger.bind(component="file_locator")

    @classmethod
    def default(
        cls,
        client,
        budget: BrowseBudget | None = None,
        max_depth: int = MAX_BROWSE_DEPTH,
    ) -> "FileLocator":
        return cls([
            RepositorySearchStrategy(client),
            WorkspaceSearchStrategy(client),
            DirectoryBrowseStrategy(client, budget=budget, max_depth=max_depth),
        ])

    async def discover(
        self,
        workspace: str,
        repository: str,
        branch: str,
        filename: str,
        package_hint: str | None = None,
    ) -> DiscoveryResult:
        query = DiscoveryQuery(
            workspace=workspace,
            repository=repository,
            branch=branch,
            filename=filename,
            package_hint=package_hint,
        )

        for strategy in self.strategies:
            try:
                result = await strategy.discover(query)
            except UpstreamUnavailableError as e:
                self.log.warning(
                    "Discovery strategy failed",
                    strategy=strategy.name,
                    filename=filename,
                    error=str(e),
                )
                continue

            if result:
                self.log.debug(
                    "File discovered",
                    strategy=strategy.name,
                    filename=filename,
                    path=result.best,
                    candidates=len(result.paths),
                )
                return result

        self.log.info("File not found by any strategy", filename=filename, repository=repository)
        return DiscoveryResult("none")

    async def locate(
        self,
        workspace: str,
        repository: str,
        branch: str,
        filename: str,
        package_hint: str | None = None,
    ) -> str | None:
        result = await self.discover(workspace, repository, branch, filename, package_hint)
        return result.best
