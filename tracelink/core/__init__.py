"""Core resolution engine.

Provides:
- Repository URL parsing and per-project configuration
- Static path mapping and dynamic file discovery
- Commit-at-time resolution and link building
- Snippet extraction and Android trace pruning
"""

from .commit_resolver import CommitResolver, CommitScope
from .errors import (
    ConfigurationMissingError,
    PathNotFoundError,
    RefNotFoundError,
    SourceFileNotFoundError,
    TraceLinkError,
    UpstreamUnavailableError,
    UrlParseError,
)
from .file_locator import BrowseBudget, FileLocator
from .frame_classifier import FrameClassifier, FrameKind
from .link_builder import LinkBuilder
from .models import (
    ResolutionStatus,
    ResolvedLocation,
    RepositoryReference,
    Snippet,
    StackFrame,
    TraceResolution,
)
from .path_mapper import PathMapper
from .repo_config import RepoConfig
from .repo_resolver import RepoResolver
from .snippet_fetcher import SnippetFetcher
from .url_parser import parse_repository_url

__all__ = [
    # Configuration
    "RepoConfig",
    "RepoResolver",
    "parse_repository_url",
    # Resolution
    "BrowseBudget",
    "CommitResolver",
    "CommitScope",
    "FileLocator",
    "LinkBuilder",
    "PathMapper",
    "SnippetFetcher",
    "FrameClassifier",
    "FrameKind",
    # Models
    "RepositoryReference",
    "ResolutionStatus",
    "ResolvedLocation",
    "Snippet",
    "StackFrame",
    "TraceResolution",
    # Errors
    "ConfigurationMissingError",
    "PathNotFoundError",
    "RefNotFoundError",
    "SourceFileNotFoundError",
    "TraceLinkError",
    "UpstreamUnavailableError",
    "UrlParseError",
]
