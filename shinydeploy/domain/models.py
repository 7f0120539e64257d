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
# DOMAIN MODELS - DEPLOYMENT DESCRIPTORS
# -----------------------------------------------------------------------------
# These models describe WHAT is being deployed: the application (derived from
# its GitHub tree URL), its resolved R dependencies, and the containers the
# engine reports back. Everything downstream (synthesizer, foundry, sweeper)
# consumes these and never parses URLs or lockfiles on its own.
# -----------------------------------------------------------------------------

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

# Suffix appended to the lowercase repository name to form the image tag
IMAGE_SUFFIX = "-img"


class ConfigError(Exception):
    """Raised when deployment configuration is missing or malformed."""

    pass


class VersionState(str, Enum):
    """Outcome of comparing the local and upstream declared versions."""

    UP_TO_DATE = "up_to_date"
    STALE = "stale"


def derive_image_name(name: str) -> str:
    """
    Return the container-engine safe variant of a repository name.

    Image references must be lowercase; applying this twice is a no-op.
    """
    return name.lower()


def _strip_scheme_and_credentials(url: str) -> str:
    """Drop 'scheme://' and an optional 'user[:token]@' prefix."""
    if "://" in url:
        url = url.split("://", 1)[1]
    if "@" in url:
        url = url.split("@", 1)[1]
    return url


class AppDescriptor(BaseModel):
    """
    The application being deployed, resolved from its repository URL.

    The URL must point at an explicit ref (https://github.com/<author>/<repo>/tree/<ref>).
    A bare repository URL is rejected instead of guessing the default branch.
    """

    repository_url: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)
    repo_name: str = Field(..., min_length=1)
    ref_name: str = Field(..., min_length=1)
    install_subdirectory: str = Field(..., min_length=1, description="Folder under inst/ holding app.R")
    model_install_function: str | None = Field(
        None, description="R function run once after dependencies are installed"
    )

    @classmethod
    def from_url(
        cls,
        repository_url: str,
        install_subdirectory: str,
        model_install_function: str | None = None,
    ) -> "AppDescriptor":
        """
        Decompose a GitHub tree URL into author, repository and ref.

        Raises:
            ConfigError: If the URL has no '/tree/<ref>' component.
        """
        url = repository_url.strip()
        if "/tree/" not in url:
            raise ConfigError(
                f"Repository URL must include a branch or tag (.../tree/<ref>): {repository_url}"
            )

        path = _strip_scheme_and_credentials(url)
        segments = path.split("/")
        head, _, tail = path.rpartition("/tree/")
        ref_name = tail.split("/", 1)[0]
        repo_name = head.rsplit("/", 1)[-1] if "/" in head else ""

        if len(segments) < 2 or not segments[1] or not repo_name or not ref_name:
            raise ConfigError(f"Cannot resolve author/repository/ref from: {repository_url}")

        if not install_subdirectory:
            raise ConfigError("Install subdirectory (inst/<dir>) is required")

        return cls(
            repository_url=url,
            author=segments[1],
            repo_name=repo_name,
            ref_name=ref_name,
            install_subdirectory=install_subdirectory,
            model_install_function=model_install_function or None,
        )

    @property
    def image_name(self) -> str:
        """Image tag built for this application (e.g. 'imputomics-img')."""
        return derive_image_name(self.repo_name) + IMAGE_SUFFIX

    @property
    def clone_url(self) -> str:
        return f"https://github.com/{self.author}/{self.repo_name}.git"

    @property
    def description_url(self) -> str:
        """Raw DESCRIPTION file at the configured ref."""
        return (
            f"https://raw.githubusercontent.com/{self.author}/{self.repo_name}/"
            f"{self.ref_name}/DESCRIPTION"
        )


class LockEntry(BaseModel):
    """One package record from renv.lock."""

    package: str = Field(..., alias="Package")
    version: str | None = Field(None, alias="Version")
    source: str | None = Field(None, alias="Source")
    remote_repo: str | None = Field(None, alias="RemoteRepo")
    remote_ref: str | None = Field(None, alias="RemoteRef")
    remote_username: str | None = Field(None, alias="RemoteUsername")

    class Config:
        """Accept both renv field names and Python names."""

        populate_by_name = True
        extra = "ignore"

    @property
    def is_complete(self) -> bool:
        """True when the package can be installed straight from its source repo."""
        return bool(self.remote_repo and self.remote_ref and self.remote_username)


class DependencyManifest(BaseModel):
    """
    How the application's R dependencies get resolved.

    locked:   renv.lock exists; lock_entries maps package -> source metadata.
    unlocked: only DESCRIPTION exists; non_registry holds Imports missing from CRAN.
    """

    locked: bool
    r_version: str | None = None
    lock_entries: dict[str, LockEntry] = Field(default_factory=dict)
    version: str = ""
    imports: list[str] = Field(default_factory=list)
    suggests: list[str] = Field(default_factory=list)
    app_on_registry: bool = False
    non_registry: list[str] = Field(default_factory=list)
    needs_java: bool = False
    needs_hmmer: bool = False
    needs_seqr: bool = False


@dataclass(frozen=True)
class ContainerRecord:
    """Snapshot of one container as reported by the engine during a sweep."""

    id: str
    status: str
    name: str
    ports: list[str] = field(default_factory=list)
    started_at: datetime | None = None
