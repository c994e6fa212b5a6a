"""Tests for ordered branch and commit detection."""

from datetime import UTC, datetime

import pytest

from tracelink.core.errors import UpstreamUnavailableError
from tracelink.core.models import CommitInfo
from tracelink.core.ref_providers import (
    EnvironmentRefProvider,
    StaticRefProvider,
    branch_providers,
    detect_branch,
    detect_release,
    first_available,
    reject_unknown,
    short_hash,
    strip_origin,
)


class TestTransforms:
    """Tests for value transforms."""

    def test_strip_origin(self):
        assert strip_origin("origin/develop") == "develop"
        assert strip_origin("feature/origin/x") == "feature/origin/x"

    def test_short_hash(self):
        assert short_hash("abcdef1234567890") == "abcdef1"

    def test_reject_unknown(self):
        assert reject_unknown("unknown") is None
        assert reject_unknown("2.4.1") == "2.4.1"


class TestProviders:
    """Tests for individual providers and chain evaluation."""

    @pytest.mark.asyncio
    async def test_environment_provider_ignores_blank(self):
        """Test whitespace-only variables count as unset."""
        provider = EnvironmentRefProvider("GIT_BRANCH", environ={"GIT_BRANCH": "   "})

        assert await provider.provide() is None
        assert provider.name == "env:GIT_BRANCH"

    @pytest.mark.asyncio
    async def test_first_available_reports_provider(self):
        """Test the winning provider's name is returned with its value."""
        providers = [StaticRefProvider(None), StaticRefProvider("release", name="fallback")]

        assert await first_available(providers) == ("fallback", "release")

    @pytest.mark.asyncio
    async def test_first_available_none(self):
        """Test None when no provider has a value."""
        assert await first_available([StaticRefProvider("")]) is None

    def test_branch_chain_order(self, mock_bitbucket):
        """Test the branch chain's fixed order."""
        names = [provider.name for provider in branch_providers(mock_bitbucket, "acme", "widgets", "main")]

        assert names == ["env:BITBUCKET_BRANCH", "env:GIT_BRANCH", "hosting_default_branch", "configured"]


class TestDetectBranch:
    """Tests for detect_branch."""

    @pytest.mark.asyncio
    async def test_ci_branch_wins(self, mock_bitbucket):
        """Test BITBUCKET_BRANCH beats every other source."""
        environ = {"BITBUCKET_BRANCH": "release/1.2", "GIT_BRANCH": "origin/develop"}

        branch = await detect_branch(mock_bitbucket, "acme", "widgets", "main", environ=environ)

        assert branch == "release/1.2"
        mock_bitbucket.get_default_branch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_git_branch_without_origin(self, mock_bitbucket):
        """Test GIT_BRANCH loses its origin/ prefix."""
        branch = await detect_branch(mock_bitbucket, "acme", "widgets", environ={"GIT_BRANCH": "origin/develop"})

        assert branch == "develop"

    @pytest.mark.asyncio
    async def test_hosting_default_branch(self, mock_bitbucket):
        """Test the repository's main branch is asked for next."""
        mock_bitbucket.get_default_branch.return_value = "trunk"

        branch = await detect_branch(mock_bitbucket, "acme", "widgets", "main", environ={})

        assert branch == "trunk"
        mock_bitbucket.get_default_branch.assert_awaited_once_with("acme", "widgets")

    @pytest.mark.asyncio
    async def test_hosting_failure_uses_configured(self, mock_bitbucket):
        """Test an API failure falls through to the configured branch."""
        mock_bitbucket.get_default_branch.side_effect = UpstreamUnavailableError("401", status_code=401)

        assert await detect_branch(mock_bitbucket, "acme", "widgets", "main", environ={}) == "main"

    @pytest.mark.asyncio
    async def test_nothing_detected(self, mock_bitbucket):
        """Test None when no source has a branch."""
        assert await detect_branch(mock_bitbucket, "acme", "widgets", None, environ={}) is None


class TestDetectRelease:
    """Tests for detect_release."""

    @pytest.mark.asyncio
    async def test_ci_commit_shortened(self, mock_bitbucket):
        """Test BITBUCKET_COMMIT is used in short form."""
        environ = {"BITBUCKET_COMMIT": "abcdef1234567890", "SENTRY_RELEASE": "2.4.1"}

        assert await detect_release(mock_bitbucket, "acme", "widgets", environ=environ) == "abcdef1"

    @pytest.mark.asyncio
    async def test_sentry_release(self, mock_bitbucket):
        """Test SENTRY_RELEASE is used when no CI commit is set."""
        assert await detect_release(mock_bitbucket, "acme", "widgets", environ={"SENTRY_RELEASE": "2.4.1"}) == "2.4.1"

    @pytest.mark.asyncio
    async def test_unknown_release_falls_back_to_branch_head(self, mock_bitbucket):
        """Test an 'unknown' release is skipped in favour of the branch HEAD."""
        mock_bitbucket.get_default_branch.return_value = "main"
        mock_bitbucket.get_branch_head.return_value = CommitInfo(
            hash="1234567890abcdef", date=datetime(2024, 5, 2, tzinfo=UTC)
        )

        release = await detect_release(mock_bitbucket, "acme", "widgets", environ={"SENTRY_RELEASE": "unknown"})

        assert release == "1234567"
        mock_bitbucket.get_branch_head.assert_awaited_once_with("acme", "widgets", "main")

    @pytest.mark.asyncio
    async def test_no_release(self, mock_bitbucket):
        """Test None when nothing identifies the deployment."""
        assert await detect_release(mock_bitbucket, "acme", "widgets", environ={}) is None
