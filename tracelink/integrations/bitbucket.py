"""
Bitbucket Cloud integration.

API Docs: https://developer.atlassian.com/cloud/bitbucket/rest/

Operations consumed by the resolution engine:
- Repository metadata (default branch)
- Commit listings for a path or a branch
- Code search scoped to a repository or a whole workspace
- Directory browsing and raw file content at a ref

Every request goes through one semaphore so the number of in-flight calls
stays within the API rate limits regardless of how many frames are being
resolved concurrently.
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from urllib.parse import quote

import httpx

from tracelink.core.errors import SourceFileNotFoundError, UpstreamUnavailableError
from tracelink.core.models import CommitInfo, DirectoryEntry
from tracelink.utils.logging import get_logger

logger = get_logger(__name__)


def parse_commit_date(value: str) -> datetime:
    """Parse an ISO-8601 commit date into an aware UTC datetime."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def commit_from_item(item: dict) -> CommitInfo | None:
    """CommitInfo for one listing entry, or None when its hash or date is unusable."""
    commit_hash = item.get("hash")
    date = item.get("date")
    if not commit_hash or not date:
        return None
    try:
        return CommitInfo(hash=commit_hash, date=parse_commit_date(date))
    except ValueError:
        return None


class BitbucketClient:
    """
    Async client for the Bitbucket Cloud 2.0 REST API.

    Usage:
        client = BitbucketClient(token="...", max_concurrent_requests=4)
        commits = await client.list_commits("acme", "widgets", path="src/main/java/Foo.kt")
        content = await client.get_file_content("acme", "widgets", "abc123", "src/main/java/Foo.kt")
        await client.close()
    """

    def __init__(
        self,
        token: str | None = None,
        api_url: str = "https://api.bitbucket.org/2.0",
        max_concurrent_requests: int = 4,
        timeout: float = 30.0,
        max_pages: int = 10,
        http: httpx.AsyncClient | None = None,
    ):
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.http = http or httpx.AsyncClient(timeout=timeout)
        self._semaphore = asyncio.Semaphore(max(1, max_concurrent_requests))
        self.max_pages = max(1, max_pages)
        self.log = logger.bind(component="bitbucket")

    @property
    def headers(self) -> dict:
        """Get headers for Bitbucket API requests."""
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _repo_url(self, workspace: str, repository: str) -> str:
        return f"{self.api_url}/repositories/{quote(workspace, safe='')}/{quote(repository, safe='')}"

    async def _get(self, url: str, params: dict[str, Any] | None = None) -> httpx.Response:
        async with self._semaphore:
            try:
                response = await self.http.get(url, headers=self.headers, params=params)
                response.raise_for_status()
                return response
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                self.log.warning("Bitbucket API error", url=url, status=status)
                if status == 404:
                    raise SourceFileNotFoundError(
                        f"Not found: {url}", status_code=status, url=url
                    ) from e
                raise UpstreamUnavailableError(
                    f"Bitbucket API returned {status} for {url}", status_code=status, url=url
                ) from e
            except httpx.HTTPError as e:
                self.log.warning("Bitbucket request failed", url=url, error=str(e))
                raise UpstreamUnavailableError(f"Bitbucket request failed: {e}", url=url) from e

    async def _get_json(self, url: str, params: dict[str, Any] | None = None) -> dict:
        response = await self._get(url, params=params)
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamUnavailableError(f"Invalid JSON from {url}", url=url) from e

    async def _get_values(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        max_pages: int | None = None,
        stop: Callable[[list[dict]], bool] | None = None,
    ) -> list[dict]:
        """
        Collect ``values`` across a paginated listing.

        Follows each page's ``next`` link (which already carries the query)
        until there is none, ``stop`` returns True for a page, or the page
        limit is reached.
        """
        limit = max_pages or self.max_pages
        values: list[dict] = []
        next_url = url
        for page_number in range(limit):
            data = await self._get_json(next_url, params=params if page_number == 0 else None)
            page = data.get("values", [])
            values.extend(page)
            next_url = data.get("next")
            if not next_url or (stop is not None and stop(page)):
                return values
        self.log.debug("Page limit reached", url=url, pages=limit)
        return values

    async def get_repository(self, workspace: str, repository: str) -> dict:
        return await self._get_json(self._repo_url(workspace, repository))

    async def get_default_branch(self, workspace: str, repository: str) -> str | None:
        """Name of the repository's main branch, if the API reports one."""
        data = await self.get_repository(workspace, repository)
        mainbranch = data.get("mainbranch") or {}
        return mainbranch.get("name") or None

    async def list_commits(
        self,
        workspace: str,
        repository: str,
        path: str | None = None,
        branch: str | None = None,
        pagelen: int | None = None,
        until: datetime | None = None,
        max_pages: int | None = None,
    ) -> list[CommitInfo]:
        """
        List commits, newest first.

        Args:
            path: Only commits touching this path
            branch: Only commits reachable from this ref
            pagelen: Page size (defaults to 50 for paths, 100 for branches)
            until: Stop paging once a page reaches a commit at or before this time
            max_pages: Page limit (defaults to the client's)
        """
        url = f"{self._repo_url(workspace, repository)}/commits"
        params: dict[str, Any] = {}
        if branch:
            url = f"{url}/{quote(branch, safe='')}"
            params["pagelen"] = pagelen or 100
        else:
            params["pagelen"] = pagelen or 50
        if path:
            params["path"] = path

        def reaches_until(page: list[dict]) -> bool:
            if until is None:
                return False
            return any(
                commit is not None and commit.date <= until
                for commit in map(commit_from_item, page)
            )

        items = await self._get_values(url, params=params, max_pages=max_pages, stop=reaches_until)
        commits = [commit for commit in map(commit_from_item, items) if commit is not None]
        if len(commits) < len(items):
            self.log.debug("Skipped unusable commit entries", skipped=len(items) - len(commits))
        return commits

    async def get_branch_head(self, workspace: str, repository: str, branch: str) -> CommitInfo | None:
        commits = await self.list_commits(workspace, repository, branch=branch, pagelen=1, max_pages=1)
        return commits[0] if commits else None

    async def search_code(
        self,
        workspace: str,
        query: str,
        repository: str | None = None,
        path: str | None = None,
    ) -> list[str]:
        """
        Code search. Returns matching file paths in result order.

        Args:
            workspace: Workspace to search
            query: Search terms, typically a filename
            repository: Restrict to one repository
            path: Restrict to paths containing this fragment
        """
        search_query = f'"{query}"'
        if repository:
            search_query += f" repo:{repository}"
        if path:
            search_query += f" path:{path}"

        items = await self._get_values(
            f"{self.api_url}/workspaces/{quote(workspace, safe='')}/search/code",
            params={"search_query": search_query, "pagelen": 50},
        )
        paths = []
        for item in items:
            file_path = (item.get("file") or {}).get("path")
            if file_path:
                paths.append(file_path)
        return paths

    async def browse_directory(
        self,
        workspace: str,
        repository: str,
        ref: str,
        path: str = "",
    ) -> list[DirectoryEntry]:
        """List one directory at ``ref``."""
        path = path.strip("/")
        url = f"{self._repo_url(workspace, repository)}/src/{quote(ref, safe='')}/"
        if path:
            url += f"{quote(path)}/"
        items = await self._get_values(url, params={"pagelen": 100})
        entries = []
        for item in items:
            entry_path = item.get("path")
            if not entry_path:
                continue
            entries.append(DirectoryEntry(
                path=entry_path,
                is_directory=item.get("type") == "commit_directory",
            ))
        return entries

    async def get_file_content(self, workspace: str, repository: str, ref: str, path: str) -> str:
        """
        Raw file content at ``ref``.

        Raises:
            SourceFileNotFoundError: The file does not exist at that ref
            UpstreamUnavailableError: Any other failure
        """
        url = f"{self._repo_url(workspace, repository)}/src/{quote(ref, safe='')}/{quote(path.lstrip('/'))}"
        response = await self._get(url)
        return response.text

    async def close(self):
        await self.http.aclose()


def create_bitbucket_client(settings) -> BitbucketClient:
    """Factory function for creating a BitbucketClient from settings."""
    token = settings.bitbucket_api_token.get_secret_value() if settings.bitbucket_api_token else None
    return BitbucketClient(
        token=token,
        api_url=settings.bitbucket_api_url,
        max_concurrent_requests=settings.max_concurrent_requests,
        timeout=settings.request_timeout_seconds,
        max_pages=settings.max_pages,
    )
