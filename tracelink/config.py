"""Configuration management for tracelink."""

import json
from typing import Annotated, Optional

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_SOURCE_ROOTS = [
    "app/src/main/java/",
    "app/src/main/kotlin/",
    "src/main/java/",
    "src/main/kotlin/",
    "app/src/",
    "src/",
    "main/java/",
    "main/kotlin/",
]


def _split_roots(value):
    if isinstance(value, str) and value.strip().startswith("["):
        return json.loads(value)
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


class ProjectRepoSettings(BaseModel):
    """Per-project repository override."""

    root: Optional[str] = Field(None, description="Application package root, e.g. com.example.app")
    bitbucket_url: Optional[str] = Field(
        None, description="Canonical browse URL https://<host>/<workspace>/<repo>/src/<branch>/<path>"
    )
    source_path: Optional[str] = Field(None, description="Explicit source root inside the repository")
    repo_url: Optional[str] = Field(None, description="Legacy base repository URL")
    branch: Optional[str] = Field(None, description="Legacy branch name")
    source_roots: Annotated[list[str], NoDecode] = Field(
        default_factory=list, description="Candidate source roots, in order"
    )

    @field_validator("source_roots", mode="before")
    @classmethod
    def split_source_roots(cls, value):
        return _split_roots(value)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore"
    )

    # Hosting API (Bitbucket Cloud)
    bitbucket_api_token: Optional[SecretStr] = Field(None, description="Bitbucket API bearer token")
    bitbucket_api_url: str = Field("https://api.bitbucket.org/2.0", description="Bitbucket REST API base URL")

    # Default repository - canonical URL form
    bitbucket_url: Optional[str] = Field(None, description="Default canonical repository browse URL")

    # Default repository - legacy explicit fields
    bitbucket_repo_url: Optional[str] = Field(None, description="Legacy base repository URL")
    bitbucket_repo_branch: Optional[str] = Field(None, description="Legacy default branch")
    bitbucket_repo_src_root: Optional[str] = Field(None, description="Legacy source root, e.g. src/main/java/")
    project_root: Optional[str] = Field(None, description="Legacy application package root")

    path_mapping_source_roots: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_SOURCE_ROOTS),
        description="Comma-separated candidate source roots used by path mapping"
    )
    projects: dict[str, ProjectRepoSettings] = Field(
        default_factory=dict,
        description="Per-project repository overrides keyed by error-tracking project"
    )

    # Error tracking (Sentry)
    sentry_api_token: Optional[SecretStr] = Field(None, description="Sentry auth token")
    sentry_api_url: str = Field("https://sentry.io", description="Sentry base URL")
    sentry_organization: Optional[str] = Field(None, description="Sentry organization slug")

    # Resolution limits
    max_concurrent_requests: int = Field(4, description="Max in-flight requests to the hosting API")
    browse_max_depth: int = Field(10, description="Max recursion depth for directory browsing")
    browse_call_budget: int = Field(100, description="Max directory listings per trace")
    resolution_deadline_seconds: float = Field(30.0, description="Deadline for resolving one trace")
    snippet_context_lines: int = Field(20, description="Lines of context around a snippet's target line")
    request_timeout_seconds: float = Field(30.0, description="HTTP timeout for upstream calls")
    max_pages: int = Field(10, description="Max pages followed per paginated hosting API listing")
    prefer_dynamic_discovery: bool = Field(
        False,
        description="Search the repository before trusting the static path guess for .kt/.java files"
    )

    # Logging
    log_level: str = Field("INFO", description="Log level")
    log_json: bool = Field(False, description="Render logs as JSON")

    @field_validator("path_mapping_source_roots", mode="before")
    @classmethod
    def split_path_mapping_source_roots(cls, value):
        return _split_roots(value)

    @field_validator("projects", mode="before")
    @classmethod
    def lowercase_project_keys(cls, value):
        if isinstance(value, dict):
            return {str(key).strip().lower(): item for key, item in value.items()}
        return value


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()
