# Copyright 2026 Pramod Kumar Voola
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

# -----------------------------------------------------------------------------
# VERSION CHECK - REDEPLOY GATE
# -----------------------------------------------------------------------------
# Responsibility: Decide whether the deployed app is behind its repository.
#
# No local checkout                 -> STALE (first deployment)
# local Version == upstream Version -> UP_TO_DATE
# anything else                     -> STALE (an empty upstream always is)
#
# Versions are compared as raw strings: "1.2" and "1.2.0" differ.
# Nothing is remembered between runs.
# -----------------------------------------------------------------------------

from dataclasses import dataclass
from pathlib import Path

import requests
from rich.console import Console

from shinydeploy.core.config import HTTP_TIMEOUT_SECONDS
from shinydeploy.core.manifest import DESCRIPTION_FILE, read_declared_version
from shinydeploy.domain.models import AppDescriptor, VersionState

console = Console()


@dataclass
class VersionCheck:
    """Result of one comparison."""

    state: VersionState
    local_version: str | None
    upstream_version: str | None

    @property
    def should_deploy(self) -> bool:
        return self.state == VersionState.STALE


def fetch_upstream_version(url: str, timeout: int = HTTP_TIMEOUT_SECONDS) -> str:
    """Declared version of the DESCRIPTION at url; empty on any failure."""
    try:
        response = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        console.print(f"[yellow][VERSION] Upstream fetch failed: {e}[/yellow]")
        return ""

    if response.status_code != 200:
        console.print(f"[yellow][VERSION] Upstream returned HTTP {response.status_code}[/yellow]")
        return ""

    return read_declared_version(response.text)


class VersionChecker:
    """Compares the checkout in workdir with the DESCRIPTION at the configured ref."""

    def __init__(self, app: AppDescriptor, workdir: Path, timeout: int = HTTP_TIMEOUT_SECONDS) -> None:
        self._app = app
        self._workdir = Path(workdir)
        self._timeout = timeout

    @property
    def checkout_dir(self) -> Path:
        return self._workdir / self._app.repo_name

    def check(self) -> VersionCheck:
        if not self.checkout_dir.is_dir():
            console.print("[yellow][VERSION] Local version not found. Deploying for the first time.[/yellow]")
            return VersionCheck(VersionState.STALE, None, None)

        description = self.checkout_dir / DESCRIPTION_FILE
        local_version = read_declared_version(description.read_text()) if description.exists() else ""

        console.print(f"[cyan][VERSION] GitHub DESCRIPTION URL: {self._app.description_url}[/cyan]")
        upstream_version = fetch_upstream_version(self._app.description_url, self._timeout)

        if upstream_version and local_version == upstream_version:
            console.print(f"[green][VERSION] Versions are the same: {local_version}[/green]")
            return VersionCheck(VersionState.UP_TO_DATE, local_version, upstream_version)

        console.print(
            f"[yellow][VERSION] Versions differ: Local Version - {local_version}, "
            f"GitHub Version - {upstream_version}[/yellow]"
        )
        return VersionCheck(VersionState.STALE, local_version, upstream_version)
