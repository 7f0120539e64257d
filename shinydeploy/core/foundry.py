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
# THE FOUNDRY - IMAGE BUILD & REPAIR
# -----------------------------------------------------------------------------
# Responsibility: Write the synthesized Dockerfile, build the application
# image and, for renv-locked apps, run ONE repair pass.
#
# Repair pass: every "Error installing package '<name>'" in the first build
# log whose renv.lock entry names RemoteUsername/RemoteRepo/RemoteRef gets a
# devtools::install_github() step before renv::restore(), then the image is
# rebuilt once. There is no second repair.
#
# Safety Features:
# - Build timeout: SHINYDEPLOY_BUILD_TIMEOUT (default 1 hour)
# - Build log: build_log.txt keeps the raw output of the last pass
# -----------------------------------------------------------------------------

import re
import time
from dataclasses import dataclass, field
from pathlib import Path

from rich.console import Console

from shinydeploy.core.config import BUILD_TIMEOUT_SECONDS
from shinydeploy.core.deploy_log import DeployLog
from shinydeploy.core.dockerfile import DockerfileSpec
from shinydeploy.core.synthesizer import add_source_install
from shinydeploy.domain.models import DependencyManifest
from shinydeploy.infra.docker_client import BuildTimeoutError, DockerProvider

console = Console()

DOCKERFILE_NAME = "dockerfile"
BUILD_LOG_NAME = "build_log.txt"

FAILED_PACKAGE_PATTERN = re.compile(r"Error installing package '([^']+)'")


@dataclass
class BuildResult:
    """Outcome of building the application image."""

    image: str
    success: bool
    attempts: int
    duration_seconds: float
    repaired_packages: list[str] = field(default_factory=list)
    skipped_packages: list[str] = field(default_factory=list)
    log: str = ""


def failed_packages(build_log: str) -> list[str]:
    """Distinct package names reported as failed, in order of appearance."""
    seen: list[str] = []
    for name in FAILED_PACKAGE_PATTERN.findall(build_log):
        if name not in seen:
            seen.append(name)
    return seen


class Foundry:
    """
    Builds the application image from a DockerfileSpec.

    The build context is the working directory, which holds both the
    generated dockerfile and the application checkout.
    """

    def __init__(
        self,
        docker: DockerProvider,
        log: DeployLog,
        context_dir: Path,
        timeout: int = BUILD_TIMEOUT_SECONDS,
    ) -> None:
        self._docker = docker
        self._log = log
        self._context = Path(context_dir)
        self._timeout = timeout

    @property
    def dockerfile_path(self) -> Path:
        return self._context / DOCKERFILE_NAME

    def _build_once(self, spec: DockerfileSpec, image: str) -> tuple[bool, str]:
        spec.write(self.dockerfile_path)
        console.print(f"[cyan][FOUNDRY] Building {image} (TTL: {self._timeout}s)[/cyan]")

        try:
            ok, output = self._docker.build_image(self._context, DOCKERFILE_NAME, image, self._timeout)
        except BuildTimeoutError as e:
            self._log.error(str(e))
            ok, output = False, e.log

        (self._context / BUILD_LOG_NAME).write_text(output)
        self._log.raw(output)
        return ok, output

    def repair(self, spec: DockerfileSpec, manifest: DependencyManifest, packages: list[str]) -> tuple[list[str], list[str]]:
        """
        Add source installs for failed packages with complete lock metadata.

        Returns:
            (repaired package names, skipped package names)
        """
        repaired, skipped = [], []
        for name in packages:
            entry = manifest.lock_entries.get(name)
            self._log.log(f"Identified failed package: {name}")

            if entry is None or not entry.is_complete:
                self._log.warning(
                    f"Skipping package update in Dockerfile due to missing package information: {name}"
                )
                skipped.append(name)
                continue

            self._log.log(
                f"Package {name}: repository {entry.remote_repo}, "
                f"ref {entry.remote_ref}, user {entry.remote_username}"
            )
            add_source_install(spec, entry)
            repaired.append(name)

        return repaired, skipped

    def build(self, spec: DockerfileSpec, image: str, manifest: DependencyManifest) -> BuildResult:
        """
        Build image, with one repair pass for locked manifests.

        A build that still fails is reported in the result; callers decide
        whether to carry on.
        """
        start = time.monotonic()
        ok, output = self._build_once(spec, image)
        attempts = 1
        repaired: list[str] = []
        skipped: list[str] = []

        packages = failed_packages(output) if manifest.locked else []
        if packages:
            self._log.log("Updating Dockerfile with package installations...")
            repaired, skipped = self.repair(spec, manifest, packages)
            if repaired:
                ok, output = self._build_once(spec, image)
                attempts += 1

        duration = time.monotonic() - start
        if ok:
            self._log.success(f"Docker image {image} built successfully ({duration:.0f}s).")
        else:
            self._log.error(f"Docker image {image} failed to build. See {BUILD_LOG_NAME}.")

        return BuildResult(
            image=image,
            success=ok,
            attempts=attempts,
            duration_seconds=duration,
            repaired_packages=repaired,
            skipped_packages=skipped,
            log=output,
        )
