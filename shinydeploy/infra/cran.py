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
# CRAN INFRASTRUCTURE - Package Registry Query
# -----------------------------------------------------------------------------
# Responsibility: Answer "is this package on CRAN?" for the synthesizer.
# Downloads the CRAN source index (src/contrib/PACKAGES) once per run and
# answers every lookup from memory.
#
# An unreachable index means nothing is known to be on CRAN: the app is then
# installed from GitHub and its imports through BiocManager, which also
# resolves CRAN packages.
# -----------------------------------------------------------------------------

import re

import requests
from rich.console import Console

from shinydeploy.core.config import HTTP_TIMEOUT_SECONDS

console = Console()

CRAN_MIRROR = "https://cloud.r-project.org"
PACKAGES_INDEX = "/src/contrib/PACKAGES"

_PACKAGE_LINE = re.compile(r"^Package:\s*(\S+)\s*$", re.MULTILINE)


def parse_packages_index(text: str) -> set[str]:
    """Extract package names from a CRAN PACKAGES file."""
    return set(_PACKAGE_LINE.findall(text))


class CranRegistry:
    """Lazy, cached view of the CRAN package index."""

    def __init__(self, mirror: str = CRAN_MIRROR, timeout: int = HTTP_TIMEOUT_SECONDS) -> None:
        self._url = mirror.rstrip("/") + PACKAGES_INDEX
        self._timeout = timeout
        self._names: set[str] | None = None

    def _load(self) -> set[str]:
        if self._names is not None:
            return self._names

        console.print(f"[cyan][CRAN] Fetching package index: {self._url}[/cyan]")
        try:
            response = requests.get(self._url, timeout=self._timeout)
            response.raise_for_status()
            self._names = parse_packages_index(response.text)
            console.print(f"[green][CRAN] {len(self._names)} packages indexed[/green]")
        except requests.RequestException as e:
            console.print(f"[yellow][CRAN] Index unavailable, treating packages as non-CRAN: {e}[/yellow]")
            self._names = set()

        return self._names

    def available(self, name: str) -> bool:
        """True if name is published on CRAN."""
        return name in self._load()
