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
# GIT INFRASTRUCTURE - GitHub Integration
# -----------------------------------------------------------------------------
# Responsibility: Fetch source from GitHub.
# Uses subprocess for lean, direct git command execution and the GitHub REST
# API (requests) for release lookups.
# -----------------------------------------------------------------------------

import shutil
import subprocess
from pathlib import Path

import requests
from rich.console import Console

from shinydeploy.core.config import COMMAND_TIMEOUT_SECONDS, HTTP_TIMEOUT_SECONDS

console = Console()

# GitHub API configuration
GITHUB_API_URL = "https://api.github.com"


class GitError(Exception):
    """Raised when a Git operation fails."""

    pass


def latest_release(owner: str, repo: str, timeout: int = HTTP_TIMEOUT_SECONDS) -> str:
    """
    Latest release tag of owner/repo with any leading 'v' removed.

    Raises:
        GitError: If the API call fails or returns no tag.
    """
    headers = {
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
    }

    try:
        response = requests.get(
            f"{GITHUB_API_URL}/repos/{owner}/{repo}/releases/latest", headers=headers, timeout=timeout
        )
    except requests.RequestException as e:
        raise GitError(f"GitHub API request failed: {e}")

    if response.status_code != 200:
        raise GitError(f"GitHub API error {response.status_code}: {response.text[:200]}")

    tag = (response.json() or {}).get("tag_name", "")
    if not tag:
        raise GitError(f"No release tag found for {owner}/{repo}")

    return tag[1:] if tag.startswith("v") else tag


class GitProvider:
    """
    Git operations through the git executable.
    """

    def __init__(self, timeout: int = COMMAND_TIMEOUT_SECONDS) -> None:
        self._timeout = timeout

    def _run(self, cmd: list, cwd: Path | None = None) -> subprocess.CompletedProcess:
        """
        Run a git command.

        Raises:
            GitError: If the command fails or times out.
        """
        try:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired:
            raise GitError(f"Git operation timed out ({self._timeout}s limit): {' '.join(cmd)}")
        except (OSError, subprocess.SubprocessError) as e:
            raise GitError(f"Git subprocess error: {e}")

        if result.returncode != 0:
            error_msg = (result.stderr or result.stdout or "Unknown error").strip()
            raise GitError(f"Git command failed: {' '.join(cmd)}\n{error_msg}")

        return result

    def clone(self, url: str, destination: Path, ref: str | None = None, replace: bool = True) -> Path:
        """
        Clone url into destination, optionally at a single branch/tag.

        Args:
            url: Repository clone URL.
            destination: Target directory.
            ref: Branch or tag; clones only that ref when given.
            replace: Remove an existing destination first.

        Returns:
            The checkout directory.
        """
        destination = Path(destination)
        if destination.exists() and replace:
            console.print(f"[yellow][GIT] Removing existing {destination}[/yellow]")
            shutil.rmtree(destination)

        cmd = ["git", "clone"]
        if ref:
            cmd += ["-b", ref, "--single-branch"]
        cmd += [url, str(destination)]

        console.print(f"[cyan][GIT] Cloning {url}{f' @ {ref}' if ref else ''}...[/cyan]")
        self._run(cmd)
        console.print(f"[green][GIT] Cloned into {destination}[/green]")
        return destination
