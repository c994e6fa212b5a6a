"""Per-project repository configuration.

A RepoConfig is built exactly once, either from a canonical repository URL or
from the legacy explicit fields (repo URL, branch, source root, package root).
The origin is recorded as a tag; callers read both variants through the same
read-only interface.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from tracelink.core.errors import ConfigurationMissingError, UrlParseError
from tracelink.core.models import RepositoryReference
from tracelink.core.url_parser import parse_base_repository_url, parse_repository_url


class ConfigOrigin(str, Enum):
    """How a RepoConfig was derived."""
    PARSED_URL = "parsed_url"
    LEGACY_FIELDS = "legacy_fields"


def normalize_source_root(root: str) -> str:
    """Normalize a source root prefix: forward slashes, no leading slash, trailing slash."""
    normalized = root.strip().replace("\\", "/").lstrip("/")
    if not normalized:
        return ""
    return normalized if normalized.endswith("/") else normalized + "/"


def normalize_source_roots(roots: Iterable[str]) -> tuple[str, ...]:
    """Normalize roots, dropping empties and duplicates while keeping order."""
    seen: dict[str, None] = {}
    for root in roots:
        normalized = normalize_source_root(root)
        if normalized and normalized not in seen:
            seen[normalized] = None
    return tuple(seen)


@dataclass(frozen=True)
class RepoConfig:
    """Repository configuration for one error-tracking project."""
    project: str
    reference: RepositoryReference
    source_roots: tuple[str, ...]
    origin: ConfigOrigin
    package_root: str | None = None
    source_path: str | None = None

    @property
    def workspace(self) -> str:
        return self.reference.workspace

    @property
    def repository(self) -> str:
        return self.reference.repository

    @property
    def branch(self) -> str:
        return self.reference.branch

    @property
    def base_url(self) -> str:
        return self.reference.base_url

    @property
    def is_url_derived(self) -> bool:
        return self.origin == ConfigOrigin.PARSED_URL

    @classmethod
    def from_url(
        cls,
        project: str,
        url: str,
        source_roots: Iterable[str] = (),
        package_root: str | None = None,
        source_path: str | None = None,
    ) -> RepoConfig:
        """Build from a canonical browse URL.

        The URL's source path, when present, is tried before the other roots.

        Raises:
            UrlParseError: If the URL is malformed.
        """
        parsed = parse_repository_url(url)
        explicit = normalize_source_root(source_path or parsed.normalized_source_path) or None
        roots = normalize_source_roots(([explicit] if explicit else []) + list(source_roots))
        return cls(
            project=project,
            reference=parsed.to_reference(),
            source_roots=roots,
            origin=ConfigOrigin.PARSED_URL,
            package_root=_clean(package_root),
            source_path=explicit,
        )

    @classmethod
    def from_legacy_fields(
        cls,
        project: str,
        repo_url: str,
        branch: str | None = None,
        source_root: str | None = None,
        package_root: str | None = None,
        source_roots: Iterable[str] = (),
    ) -> RepoConfig:
        """Build from the legacy explicit fields.

        Raises:
            UrlParseError: If ``repo_url`` is not a base repository URL.
        """
        host, workspace, repository = parse_base_repository_url(repo_url)
        explicit = normalize_source_root(source_root or "") or None
        roots = normalize_source_roots(([explicit] if explicit else []) + list(source_roots))
        return cls(
            project=project,
            reference=RepositoryReference(
                host=host,
                workspace=workspace,
                repository=repository,
                branch=(branch or "").strip(),
            ),
            source_roots=roots,
            origin=ConfigOrigin.LEGACY_FIELDS,
            package_root=_clean(package_root),
            source_path=explicit,
        )

    @classmethod
    def build(
        cls,
        project: str,
        url: str | None = None,
        repo_url: str | None = None,
        branch: str | None = None,
        source_path: str | None = None,
        package_root: str | None = None,
        source_roots: Iterable[str] = (),
    ) -> RepoConfig:
        """Build from whichever form is available, preferring the canonical URL.

        A malformed canonical URL falls back to the legacy fields when present.

        Raises:
            ConfigurationMissingError: If neither form yields a configuration.
        """
        source_roots = list(source_roots)
        url_error: UrlParseError | None = None

        if url and url.strip():
            try:
                return cls.from_url(
                    project,
                    url,
                    source_roots=source_roots,
                    package_root=package_root,
                    source_path=source_path,
                )
            except UrlParseError as e:
                url_error = e

        if repo_url and repo_url.strip():
            try:
                return cls.from_legacy_fields(
                    project,
                    repo_url,
                    branch=branch,
                    source_root=source_path,
                    package_root=package_root,
                    source_roots=source_roots,
                )
            except UrlParseError as e:
                raise ConfigurationMissingError(project, str(e)) from e

        if url_error is not None:
            raise ConfigurationMissingError(project, str(url_error)) from url_error
        raise ConfigurationMissingError(project, "no repository URL configured")


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None
