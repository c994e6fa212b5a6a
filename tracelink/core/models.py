"""Data model shared by the resolution engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

UNKNOWN_LINE = -1


class ResolutionStatus(str, Enum):
    """Outcome of resolving one frame."""
    RESOLVED = "resolved"
    NOT_FOUND = "not_found"
    INCOMPLETE = "incomplete"
    ERROR = "error"


class PathSource(str, Enum):
    """Where a resolved relative path came from."""
    STATIC = "static"
    DYNAMIC = "dynamic"


class SnippetStatus(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class RepositoryReference:
    """A repository on the hosting service plus its default ref."""
    host: str
    workspace: str
    repository: str
    branch: str

    @property
    def base_url(self) -> str:
        return f"https://{self.host}/{self.workspace}/{self.repository}"

    def with_branch(self, branch: str) -> RepositoryReference:
        return RepositoryReference(
            host=self.host,
            workspace=self.workspace,
            repository=self.repository,
            branch=branch,
        )


@dataclass(frozen=True)
class StackFrame:
    """One frame of a reported exception."""
    module: str
    filename: str
    lineno: int = UNKNOWN_LINE
    function: str = ""

    @property
    def package(self) -> str:
        """Module minus its trailing class segment."""
        module = self.module or ""
        return module.rsplit(".", 1)[0] if "." in module else ""

    def describe(self) -> str:
        """Render the frame the way JVM traces print it."""
        qualifier = f"{self.module}." if self.module else ""
        location = self.filename
        if self.lineno != UNKNOWN_LINE:
            location = f"{location}:{self.lineno}"
        return f"{qualifier}{self.function}({location})"


@dataclass(frozen=True)
class CommitInfo:
    """A commit as listed by the hosting API."""
    hash: str
    date: datetime

    @property
    def short_hash(self) -> str:
        return self.hash[:7]


@dataclass(frozen=True)
class DirectoryEntry:
    """One entry of a directory listing."""
    path: str
    is_directory: bool

    @property
    def name(self) -> str:
        return self.path.rstrip("/").rsplit("/", 1)[-1]


@dataclass(frozen=True)
class DiscoveryResult:
    """Candidate paths from one discovery strategy, best match first."""
    strategy: str
    paths: tuple[str, ...] = ()

    @property
    def best(self) -> str | None:
        return self.paths[0] if self.paths else None

    def __bool__(self) -> bool:
        return bool(self.paths)


@dataclass(frozen=True)
class Snippet:
    """A line-numbered window of a file at a given ref."""
    status: SnippetStatus
    path: str
    ref: str
    text: str = ""
    error: str | None = None

    @property
    def found(self) -> bool:
        return self.status == SnippetStatus.OK


@dataclass
class ResolvedLocation:
    """Result of resolving one frame to a repository location."""
    frame: StackFrame
    status: ResolutionStatus
    reference: RepositoryReference | None = None
    path: str | None = None
    ref: str | None = None
    url: str | None = None
    path_source: PathSource | None = None
    snippet: Snippet | None = None
    error: str | None = None

    @property
    def line(self) -> int:
        return self.frame.lineno

    @property
    def marker(self) -> str:
        """Inline annotation rendered after the frame."""
        if self.status == ResolutionStatus.RESOLVED and self.url:
            return f"[{self.url}]"
        if self.status == ResolutionStatus.INCOMPLETE:
            return "[resolution incomplete]"
        if self.status == ResolutionStatus.ERROR:
            return f"[resolution error: {self.error}]"
        return "[source not found]"


@dataclass
class TraceResolution:
    """All resolved frames of one trace, in original frame order."""
    project: str
    locations: list[ResolvedLocation] = field(default_factory=list)
    error_time: datetime | None = None
    deadline_expired: bool = False

    @property
    def resolved_count(self) -> int:
        return sum(1 for loc in self.locations if loc.status == ResolutionStatus.RESOLVED)

    @property
    def incomplete_count(self) -> int:
        return sum(1 for loc in self.locations if loc.status == ResolutionStatus.INCOMPLETE)
