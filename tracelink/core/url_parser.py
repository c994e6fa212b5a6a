"""Parsing of repository browse URLs.

Supports the canonical form ``https://<host>/<workspace>/<repo>/src/<branch>/<path>``
as well as the legacy base form ``https://<host>/<workspace>/<repo>`` and links
composed by the link builder (``.../src/<ref>/<path>#lines-<n>``).

Example:
    parsed = parse_repository_url("https://bitbucket.org/acme/widgets/src/main/app/src/main/java/")
    parsed.workspace          # "acme"
    parsed.normalized_source_path  # "app/src/main/java/"
"""

import re
from dataclasses import dataclass

import structlog

from tracelink.core.errors import UrlParseError
from tracelink.core.models import RepositoryReference

logger = structlog.get_logger(__name__)

REPOSITORY_URL_PATTERN = re.compile(r"^https?://([^/]+)/([^/]+)/([^/]+)/src/([^/]+)/?(.*)$")
BASE_URL_PATTERN = re.compile(r"^https?://([^/]+)/([^/]+)/([^/]+?)/?$")
FILE_LINK_PATTERN = re.compile(r"https?://([^/\s]+)/([^/\s]+)/([^/\s]+)/src/([^/\s]+)/([^\s#\]]+?)#lines-(\d+)")


@dataclass(frozen=True)
class ParsedRepositoryUrl:
    """Components of a canonical repository browse URL."""
    host: str
    workspace: str
    repository: str
    branch: str
    source_path: str
    original_url: str

    @property
    def base_url(self) -> str:
        """Base repository URL without src/branch/path."""
        return f"https://{self.host}/{self.workspace}/{self.repository}"

    @property
    def normalized_source_path(self) -> str:
        """Source path with a trailing slash, or empty for the repository root."""
        path = self.source_path.strip()
        if not path:
            return ""
        return path if path.endswith("/") else path + "/"

    def to_reference(self) -> RepositoryReference:
        return RepositoryReference(
            host=self.host,
            workspace=self.workspace,
            repository=self.repository,
            branch=self.branch,
        )


@dataclass(frozen=True)
class ParsedFileLink:
    """Components of a line-anchored file link."""
    host: str
    workspace: str
    repository: str
    ref: str
    path: str
    line: int
    url: str


def parse_repository_url(url: str | None) -> ParsedRepositoryUrl:
    """Parse a canonical repository URL.

    Raises:
        UrlParseError: If the URL is empty or has a different shape.
    """
    if url is None or not url.strip():
        raise UrlParseError(url)

    match = REPOSITORY_URL_PATTERN.match(url.strip())
    if not match:
        raise UrlParseError(url)

    host, workspace, repository, branch, source_path = match.groups()
    parsed = ParsedRepositoryUrl(
        host=host,
        workspace=workspace,
        repository=repository,
        branch=branch,
        source_path=source_path,
        original_url=url,
    )
    logger.debug(
        "Parsed repository URL",
        workspace=workspace,
        repository=repository,
        branch=branch,
        source_path=source_path,
    )
    return parsed


def is_valid_repository_url(url: str | None) -> bool:
    try:
        parse_repository_url(url)
    except UrlParseError:
        return False
    return True


def parse_base_repository_url(url: str | None) -> tuple[str, str, str]:
    """Parse a legacy ``https://<host>/<workspace>/<repo>`` URL into (host, workspace, repo)."""
    if url is None or not url.strip():
        raise UrlParseError(url, expected="https://<host>/<workspace>/<repo>")

    match = BASE_URL_PATTERN.match(url.strip())
    if not match:
        raise UrlParseError(url, expected="https://<host>/<workspace>/<repo>")
    return match.group(1), match.group(2), match.group(3)


def parse_file_link(url: str) -> ParsedFileLink | None:
    """Parse a link produced by the link builder; None if it is not one."""
    match = FILE_LINK_PATTERN.search(url)
    if not match:
        return None
    host, workspace, repository, ref, path, line = match.groups()
    return ParsedFileLink(
        host=host,
        workspace=workspace,
        repository=repository,
        ref=ref,
        path=path,
        line=int(line),
        url=match.group(0),
    )


def find_file_links(text: str) -> list[ParsedFileLink]:
    """All line-anchored file links embedded in a block of text, in order."""
    links = []
    for match in FILE_LINK_PATTERN.finditer(text):
        host, workspace, repository, ref, path, line = match.groups()
        links.append(ParsedFileLink(
            host=host,
            workspace=workspace,
            repository=repository,
            ref=ref,
            path=path,
            line=int(line),
            url=match.group(0),
        ))
    return links
