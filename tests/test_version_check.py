# =============================================================================
# SHINYDEPLOY VERSION CHECK TESTS
# =============================================================================
# Tests for the redeploy gate (local vs upstream DESCRIPTION version).
# =============================================================================

from unittest.mock import MagicMock, patch

import pytest
import requests

from shinydeploy.core.version_check import VersionChecker, fetch_upstream_version
from shinydeploy.domain.models import VersionState


def upstream(version: str, status: int = 200) -> MagicMock:
    return MagicMock(status_code=status, text=f"Package: imputomics\nVersion: {version}\n")


@pytest.fixture
def checker(app, unlocked_checkout):
    # unlocked_checkout lives at <tmp>/imputomics, so its parent is the workdir
    return VersionChecker(app, unlocked_checkout.parent)


class TestVersionChecker:
    """Test VersionChecker.check."""

    def test_equal_versions_up_to_date(self, checker):
        """Same declared version means no deployment."""
        with patch("shinydeploy.core.version_check.requests.get", return_value=upstream("1.2.0")):
            result = checker.check()

        assert result.state == VersionState.UP_TO_DATE
        assert result.should_deploy is False
        assert result.local_version == result.upstream_version == "1.2.0"

    def test_different_versions_stale(self, checker):
        """A new upstream version triggers deployment."""
        with patch("shinydeploy.core.version_check.requests.get", return_value=upstream("1.3.0")):
            result = checker.check()

        assert result.state == VersionState.STALE
        assert result.should_deploy is True

    def test_raw_string_comparison(self, checker):
        """'1.2' and '1.2.0' are different versions."""
        with patch("shinydeploy.core.version_check.requests.get", return_value=upstream("1.2")):
            assert checker.check().state == VersionState.STALE

    def test_no_checkout_is_stale(self, app, tmp_path):
        """Without a local checkout the app is deployed, upstream is not fetched."""
        with patch("shinydeploy.core.version_check.requests.get") as mock_get:
            result = VersionChecker(app, tmp_path).check()

        assert result.state == VersionState.STALE
        assert result.local_version is None
        mock_get.assert_not_called()

    def test_fetch_failure_is_stale(self, checker):
        """An unreachable upstream compares as empty, which is stale."""
        with patch("shinydeploy.core.version_check.requests.get", side_effect=requests.ConnectionError("down")):
            result = checker.check()

        assert result.state == VersionState.STALE
        assert result.upstream_version == ""

    def test_requests_description_at_ref(self, checker, app):
        """The raw DESCRIPTION at the configured ref is fetched."""
        with patch("shinydeploy.core.version_check.requests.get", return_value=upstream("1.2.0")) as mock_get:
            checker.check()

        assert mock_get.call_args[0][0] == app.description_url
        assert mock_get.call_args[1]["timeout"] > 0


class TestFetchUpstreamVersion:
    """Test fetch_upstream_version."""

    def test_non_200_is_empty(self):
        """A 404 yields an empty version."""
        with patch("shinydeploy.core.version_check.requests.get", return_value=upstream("9.9", status=404)):
            assert fetch_upstream_version("https://example.org/DESCRIPTION") == ""

    def test_reads_version(self):
        """The Version field is returned."""
        with patch("shinydeploy.core.version_check.requests.get", return_value=upstream("2.0.1")):
            assert fetch_upstream_version("https://example.org/DESCRIPTION") == "2.0.1"
