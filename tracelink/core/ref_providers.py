"""Ordered ref detection.

Branch and commit detection are each an explicit chain of named providers,
evaluated in order; the first non-empty value wins.

Branch chain: BITBUCKET_BRANCH, GIT_BRANCH (without ``origin/``), the
repository's default branch from the hosting API, the configured branch.

Commit chain: BITBUCKET_COMMIT (short), SENTRY_RELEASE (unless ``unknown``),
the HEAD of the detected branch (short).
"""

import os
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping, Sequence

import structlog

from tracelink.core.errors import UpstreamUnavailableError

logger = structlog.get_logger(__name__)

SHORT_HASH_LENGTH = 7


class RefProvider(ABC):
    """One named source of a branch or commit."""

    name: str = "provider"

    @abstractmethod
    async def provide(self) -> str | None:
        pass


class EnvironmentRefProvider(RefProvider):
    """Reads a deployment/CI variable."""

    def __init__(
        self,
        variable: str,
        transform: Callable[[str], str | None] | None = None,
        environ: Mapping[str, str] | None = None,
    ):
        self.variable = variable
        self.name = f"env:{variable}"
        self.transform = transform
        self.environ = environ if environ is not None else os.environ

    async def provide(self) -> str | None:
        value = (self.environ.get(self.variable) or "").strip()
        if not value:
            return None
        if self.transform:
            return self.transform(value)
        return value


class StaticRefProvider(RefProvider):
    """A fixed, configured value."""

    def __init__(self, value: str | None, name: str = "configured"):
        self.value = value
        self.name = name

    async def provide(self) -> str | None:
        return self.value or None


class DefaultBranchProvider(RefProvider):
    """The repository's main branch as reported by the hosting API."""

    name = "hosting_default_branch"

    def __init__(self, client, workspace: str, repository: str):
        self.client = client
        self.workspace = workspace
        self.repository = repository

    async def provide(self) -> str | None:
        return await self.client.get_default_branch(self.workspace, self.repository)


class BranchHeadProvider(RefProvider):
    """HEAD commit of the branch detected by another provider chain."""

    name = "hosting_branch_head"

    def __init__(self, client, workspace: str, repository: str, branch_providers: Sequence[RefProvider]):
        self.client = client
        self.workspace = workspace
        self.repository = repository
        self.branch_providers = list(branch_providers)

    async def provide(self) -> str | None:
        detected = await first_available(self.branch_providers)
        if detected is None:
            return None
        head = await self.client.get_branch_head(self.workspace, self.repository, detected[1])
        return head.short_hash if head else None


def strip_origin(value: str) -> str:
    return value.removeprefix("origin/")


def short_hash(value: str) -> str:
    return value[:SHORT_HASH_LENGTH]


def reject_unknown(value: str) -> str | None:
    return None if value == "unknown" else value


async def first_available(providers: Sequence[RefProvider]) -> tuple[str, str] | None:
    """Evaluate providers in order; return (provider name, value) of the first hit."""
    for provider in providers:
        try:
            value = await provider.provide()
        except UpstreamUnavailableError as e:
            logger.warning("Ref provider failed", provider=provider.name, error=str(e))
            continue
        if value:
            logger.debug("Ref detected", provider=provider.name, value=value)
            return provider.name, value
    return None


def branch_providers(
    client,
    workspace: str,
    repository: str,
    configured_branch: str | None,
    environ: Mapping[str, str] | None = None,
) -> list[RefProvider]:
    return [
        EnvironmentRefProvider("BITBUCKET_BRANCH", environ=environ),
        EnvironmentRefProvider("GIT_BRANCH", transform=strip_origin, environ=environ),
        DefaultBranchProvider(client, workspace, repository),
        StaticRefProvider(configured_branch),
    ]


def commit_providers(
    client,
    workspace: str,
    repository: str,
    configured_branch: str | None,
    environ: Mapping[str, str] | None = None,
) -> list[RefProvider]:
    return [
        EnvironmentRefProvider("BITBUCKET_COMMIT", transform=short_hash, environ=environ),
        EnvironmentRefProvider("SENTRY_RELEASE", transform=reject_unknown, environ=environ),
        BranchHeadProvider(
            client,
            workspace,
            repository,
            branch_providers(client, workspace, repository, configured_branch, environ=environ),
        ),
    ]


async def detect_branch(client, workspace, repository, configured_branch=None, environ=None) -> str | None:
    detected = await first_available(
        branch_providers(client, workspace, repository, configured_branch, environ=environ)
    )
    return detected[1] if detected else None


async def detect_release(client, workspace, repository, configured_branch=None, environ=None) -> str | None:
    """Commit to tag the running deployment's errors with."""
    detected = await first_available(
        commit_providers(client, workspace, repository, configured_branch, environ=environ)
    )
    return detected[1] if detected else None
