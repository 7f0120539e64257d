"""
Pytest configuration and fixtures for shinydeploy tests.
"""

import json
import subprocess
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Make the package importable without installing it
sys.path.insert(0, str(Path(__file__).parent.parent))

from shinydeploy.core.deploy_log import DeployLog
from shinydeploy.domain.models import AppDescriptor

APP_URL = "https://github.com/BioGenies/imputomics/tree/main"

DESCRIPTION = """Package: imputomics
Title: Missing Value Imputation for Metabolomics
Version: 1.2.0
Depends: R (>= 4.1.0)
Imports:
    shiny (>= 1.7.0),
    DT,
    missMDA,
    stats
Suggests: testthat
"""

RENV_LOCK = {
    "R": {"Version": "4.2.1", "Repositories": [{"Name": "CRAN", "URL": "https://cloud.r-project.org"}]},
    "Packages": {
        "shiny": {"Package": "shiny", "Version": "1.7.4", "Source": "Repository", "Repository": "CRAN"},
        "seqinr": {
            "Package": "seqinr",
            "Version": "4.2-30",
            "Source": "GitHub",
            "RemoteType": "github",
            "RemoteHost": "api.github.com",
            "RemoteRepo": "seqinr",
            "RemoteUsername": "lbbe-software",
            "RemoteRef": "master",
        },
        "missMDA": {"Package": "missMDA", "Version": "1.18", "Source": "Repository"},
    },
}


class FakeRegistry:
    """In-memory package registry."""

    def __init__(self, names=()):
        self.names = set(names)
        self.queries = []

    def available(self, name: str) -> bool:
        self.queries.append(name)
        return name in self.names


def completed(returncode: int = 0, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess:
    """CompletedProcess stand-in for patched subprocess.run calls."""
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def mock_docker_client():
    """Mock Docker client for testing."""
    client = MagicMock()
    client.ping.return_value = True
    client.containers.list.return_value = []
    client.images.list.return_value = []
    return client


@pytest.fixture
def deploy_log(tmp_path):
    """Deploy log writing into the test's temporary directory."""
    return DeployLog(tmp_path / "deploy_log.txt")


@pytest.fixture
def app():
    """Descriptor of the sample application."""
    return AppDescriptor.from_url(APP_URL, "imputomics")


@pytest.fixture
def registry():
    """Registry knowing a handful of CRAN packages."""
    return FakeRegistry({"shiny", "DT", "testthat", "ggplot2"})


@pytest.fixture
def unlocked_checkout(tmp_path):
    """Checkout with only a DESCRIPTION file."""
    checkout = tmp_path / "imputomics"
    checkout.mkdir()
    (checkout / "DESCRIPTION").write_text(DESCRIPTION)
    return checkout


@pytest.fixture
def locked_checkout(unlocked_checkout):
    """Checkout with DESCRIPTION and renv.lock."""
    (unlocked_checkout / "renv.lock").write_text(json.dumps(RENV_LOCK))
    return unlocked_checkout
