"""Shared fixtures for tracelink tests."""

import os
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

ANDROID_URL = "https://bitbucket.org/acme/widgets/src/main/app/src/main/java/"
APP_ROOT = "com.example.app"

# Settings fields and CI variables that would leak the developer's environment into tests
_ENV_VARS = (
    "BITBUCKET_API_TOKEN",
    "BITBUCKET_API_URL",
    "BITBUCKET_URL",
    "BITBUCKET_REPO_URL",
    "BITBUCKET_REPO_BRANCH",
    "BITBUCKET_REPO_SRC_ROOT",
    "PROJECT_ROOT",
    "PATH_MAPPING_SOURCE_ROOTS",
    "PROJECTS",
    "SENTRY_API_TOKEN",
    "SENTRY_API_URL",
    "SENTRY_ORGANIZATION",
    "MAX_CONCURRENT_REQUESTS",
    "BROWSE_MAX_DEPTH",
    "BROWSE_CALL_BUDGET",
    "RESOLUTION_DEADLINE_SECONDS",
    "SNIPPET_CONTEXT_LINES",
    "PREFER_DYNAMIC_DISCOVERY",
    "REQUEST_TIMEOUT_SECONDS",
    "MAX_PAGES",
    "LOG_LEVEL",
    "LOG_JSON",
    "BITBUCKET_BRANCH",
    "GIT_BRANCH",
    "BITBUCKET_COMMIT",
    "SENTRY_RELEASE",
)


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


@pytest.fixture(autouse=True)
def mock_env_vars(monkeypatch):
    """Start every test from an environment with no repository configuration."""
    for name in list(os.environ):
        if name.upper() in _ENV_VARS or name.upper().startswith("PROJECTS__"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def make_settings():
    """Build Settings without reading any .env file."""
    from tracelink.config import Settings

    def _make(**overrides):
        return Settings(_env_file=None, **overrides)

    return _make


@pytest.fixture
def settings(make_settings):
    """Settings for an Android project configured by canonical URL."""
    return make_settings(bitbucket_url=ANDROID_URL, project_root=APP_ROOT)


@pytest.fixture
def repo_config():
    """URL-derived RepoConfig for the Android project."""
    from tracelink.config import DEFAULT_SOURCE_ROOTS
    from tracelink.core.repo_config import RepoConfig

    return RepoConfig.from_url(
        "android",
        ANDROID_URL,
        source_roots=DEFAULT_SOURCE_ROOTS,
        package_root=APP_ROOT,
    )


@pytest.fixture
def reference():
    """Repository reference for acme/widgets on main."""
    from tracelink.core.models import RepositoryReference

    return RepositoryReference(
        host="bitbucket.org",
        workspace="acme",
        repository="widgets",
        branch="main",
    )


@pytest.fixture
def error_time():
    return datetime(2024, 5, 2, 12, 0, tzinfo=UTC)


@pytest.fixture
def mock_bitbucket():
    """Create a mock BitbucketClient that finds nothing unless told otherwise."""
    from tracelink.integrations.bitbucket import BitbucketClient

    client = AsyncMock(spec=BitbucketClient)
    client.get_default_branch = AsyncMock(return_value=None)
    client.get_branch_head = AsyncMock(return_value=None)
    client.list_commits = AsyncMock(return_value=[])
    client.search_code = AsyncMock(return_value=[])
    client.browse_directory = AsyncMock(return_value=[])
    client.get_file_content = AsyncMock(return_value="")
    client.close = AsyncMock()
    return client


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx AsyncClient."""
    mock_client = AsyncMock()
    mock_response = MagicMock()
    mock_response.status_code = 200
    mock_response.json.return_value = {}
    mock_response.text = ""
    mock_response.raise_for_status = MagicMock()
    mock_client.get = AsyncMock(return_value=mock_response)
    mock_client.aclose = AsyncMock()
    return mock_client


def make_response(json_data=None, text="", status_code=200):
    """Build a MagicMock httpx response; non-2xx statuses raise on raise_for_status."""
    import httpx

    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = json_data if json_data is not None else {}
    response.text = text
    if status_code >= 400:
        request = httpx.Request("GET", "https://api.example.test")
        response.raise_for_status = MagicMock(side_effect=httpx.HTTPStatusError(
            f"HTTP {status_code}",
            request=request,
            response=httpx.Response(status_code, request=request),
        ))
    else:
        response.raise_for_status = MagicMock()
    return response


@pytest.fixture
def response_factory():
    return make_response
