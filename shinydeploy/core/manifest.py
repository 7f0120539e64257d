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
# DEPENDENCY MANIFEST - CHECKOUT INSPECTION
# -----------------------------------------------------------------------------
# Responsibility: Read a cloned R package (DESCRIPTION, renv.lock, README.Rmd)
# and classify how its dependencies must be resolved.
#
# locked   -> renv.lock present, exact versions and remote origins known
# unlocked -> DESCRIPTION only, CRAN is consulted for every Imports entry
#
# Also raises the special-case flags (Java bridge, hmmer, seqR) that add
# instructions to the image.
# -----------------------------------------------------------------------------

import json
import re
from pathlib import Path
from typing import Protocol

from rich.console import Console

from shinydeploy.domain.models import DependencyManifest, LockEntry

console = Console()

DESCRIPTION_FILE = "DESCRIPTION"
LOCK_FILE = "renv.lock"
README_FILE = "README.Rmd"

# Shipped with R itself, never on CRAN
STANDARD_PACKAGES = frozenset(
    {"stats", "graphics", "grDevices", "utils", "datasets", "methods", "tools", "base"}
)

JAVA_BRIDGE_PACKAGES = ("rJava", "XLConnect")
SEQR_PACKAGE = "seqR"
HMMER_MARKER = "hmmer"

_VERSION_CONSTRAINT = re.compile(r"\([^)]*\)")


class PackageRegistry(Protocol):
    """Anything that can answer whether a package is on the public registry."""

    def available(self, name: str) -> bool: ...


def parse_dcf(text: str) -> dict[str, str]:
    """
    Parse a Debian-control style file (R DESCRIPTION).

    Continuation lines (leading whitespace) are folded into the previous field.
    """
    fields: dict[str, str] = {}
    current: str | None = None

    for line in text.splitlines():
        if not line.strip():
            current = None
            continue
        if line[0] in " \t" and current is not None:
            fields[current] = f"{fields[current]}\n{line.strip()}".strip()
            continue
        key, sep, value = line.partition(":")
        if not sep:
            continue
        current = key.strip()
        fields[current] = value.strip()

    return fields


def split_package_list(value: str) -> list[str]:
    """Turn 'shiny (>= 1.7), DT,\\n  ggplot2' into ['shiny', 'DT', 'ggplot2']."""
    cleaned = _VERSION_CONSTRAINT.sub("", value or "")
    names = []
    for part in cleaned.replace("\n", ",").split(","):
        name = part.strip()
        if name and name != "R" and name not in names:
            names.append(name)
    return names


def read_declared_version(text: str) -> str:
    """Version field of a DESCRIPTION body, empty when absent."""
    return parse_dcf(text).get("Version", "")


def load_lockfile(path: Path) -> tuple[str | None, dict[str, LockEntry]]:
    """
    Read renv.lock.

    Returns:
        (R version, package name -> LockEntry)
    """
    with open(path) as f:
        data = json.load(f)

    r_version = (data.get("R") or {}).get("Version")
    entries = {}
    for name, record in (data.get("Packages") or {}).items():
        entries[name] = LockEntry.model_validate({"Package": name, **record})
    return r_version, entries


def resolve_non_registry(
    repo_name: str, imports: list[str], registry: PackageRegistry
) -> tuple[bool, list[str]]:
    """
    Partition the application and its imports by registry availability.

    Returns:
        (whether repo_name itself is on the registry,
         imports that are neither on the registry nor part of base R)
    """
    app_on_registry = registry.available(repo_name)
    if app_on_registry:
        console.print(f"[cyan][MANIFEST] Package '{repo_name}' is available on CRAN[/cyan]")
    else:
        console.print(f"[yellow][MANIFEST] Package '{repo_name}' is not available on CRAN[/yellow]")

    missing = [name for name in imports if not registry.available(name)]
    non_registry = [name for name in missing if name not in STANDARD_PACKAGES]
    return app_on_registry, non_registry


class ManifestInspector:
    """Classify a checkout and collect everything the synthesizer needs."""

    def __init__(self, registry: PackageRegistry) -> None:
        self._registry = registry

    def inspect(self, checkout: Path, repo_name: str) -> DependencyManifest:
        checkout = Path(checkout)
        description_path = checkout / DESCRIPTION_FILE
        description = parse_dcf(description_path.read_text()) if description_path.exists() else {}

        imports = split_package_list(description.get("Imports", ""))
        suggests = split_package_list(description.get("Suggests", ""))
        declared = set(split_package_list(description.get("Depends", ""))) | set(imports) | set(suggests)
        declared |= set(split_package_list(description.get("LinkingTo", "")))

        lock_path = checkout / LOCK_FILE
        locked = lock_path.exists()

        manifest = DependencyManifest(
            locked=locked,
            version=description.get("Version", ""),
            imports=imports,
            suggests=suggests,
        )

        if locked:
            console.print("[cyan][MANIFEST] renv.lock found - using renv for package management[/cyan]")
            manifest.r_version, manifest.lock_entries = load_lockfile(lock_path)
            manifest.needs_java = "rJava" in manifest.lock_entries
        else:
            console.print("[cyan][MANIFEST] renv.lock not found - resolving from DESCRIPTION[/cyan]")
            manifest.app_on_registry, manifest.non_registry = resolve_non_registry(
                repo_name, imports, self._registry
            )
            if manifest.non_registry:
                console.print(f"[yellow][MANIFEST] Non-CRAN packages: {', '.join(manifest.non_registry)}[/yellow]")
            manifest.needs_java = any(p in declared for p in JAVA_BRIDGE_PACKAGES)

        manifest.needs_seqr = SEQR_PACKAGE in declared

        readme = checkout / README_FILE
        manifest.needs_hmmer = readme.exists() and HMMER_MARKER in readme.read_text(errors="replace")

        return manifest
