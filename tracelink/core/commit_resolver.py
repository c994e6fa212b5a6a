"""Finds the commit that was active when an error occurred."""

from collections.abc import Sequence
from datetime import UTC, datetime
from enum import Enum

import structlog

from tracelink.core.errors import UpstreamUnavailableError
from tracelink.core.models import CommitInfo, RepositoryReference

logger = structlog.get_logger(__name__)


class CommitScope(str, Enum):
    """Which commit listing to scan."""
    FILE = "file"
    BRANCH = "branch"


def to_utc(timestamp: datetime | str) -> datetime:
    """Coerce a datetime or ISO-8601 string into an aware UTC datetime.

    Naive datetimes are taken to be UTC.
    """
    if isinstance(timestamp, str):
        timestamp = datetime.fromisoformat(timestamp.strip().replace("Z", "+00:00"))
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=UTC)
    return timestamp.astimezone(UTC)


def select_commit_at(commits: Sequence[CommitInfo], target: datetime | str) -> str | None:
    """Hash of the newest commit at or before ``target``.

    ``commits`` must be ordered newest first, as the hosting API returns them.
    """
    target = to_utc(target)
    for commit in commits:
        if to_utc(commit.date) <= target:
            return commit.hash
    return None


class CommitResolver:
    """Resolves the ref to pin links to for a given error time.

    File-scoped lookup is tried first since it captures the exact version of
    the file a frame points at; branch-scoped lookup is the fallback. A None
    result means the caller should use the configured branch.
    """

    def __init__(self, client):
        self.client = client
        self.log = logger.bind(component="commit_resolver")

    async def resolve_ref_at_time(
        self,
        workspace: str,
        repository: str,
        path_or_branch: str,
        timestamp: datetime | str,
        scope: CommitScope = CommitScope.FILE,
    ) -> str | None:
        try:
            target = to_utc(timestamp)
        except ValueError as e:
            self.log.warning("Unparseable error timestamp", timestamp=str(timestamp), error=str(e))
            return None

        try:
            if scope == CommitScope.FILE:
                commits = await self.client.list_commits(
                    workspace, repository, path=path_or_branch, until=target
                )
            else:
                commits = await self.client.list_commits(
                    workspace, repository, branch=path_or_branch, until=target
                )
        except UpstreamUnavailableError as e:
            self.log.warning(
                "Commit lookup failed",
                scope=scope.value,
                target=path_or_branch,
                error=str(e),
            )
            return None

        commit_hash = select_commit_at(commits, target)
        if commit_hash is None:
            self.log.debug(
                "No commit at or before error time",
                scope=scope.value,
                target=path_or_branch,
                error_time=target.isoformat(),
                candidates=len(commits),
            )
        return commit_hash

    async def resolve_for_frame(
        self,
        reference: RepositoryReference,
        path: str | None,
        timestamp: datetime | str | None,
    ) -> str | None:
        """File-scoped lookup, then branch-scoped; None when neither finds a commit."""
        if timestamp is None:
            return None

        if path:
            commit_hash = await self.resolve_ref_at_time(
                reference.workspace, reference.repository, path, timestamp, CommitScope.FILE
            )
            if commit_hash:
                return commit_hash

        if reference.branch:
            return await self.resolve_ref_at_time(
                reference.workspace, reference.repository, reference.branch, timestamp, CommitScope.BRANCH
            )
        return None
