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
# DOCKER PROVIDER
# -----------------------------------------------------------------------------
# Responsibility: A robust wrapper around the Docker SDK with connection
# validation and detailed error reporting.
#
# Exposes exactly what the foundry and the sweeper need: build an image under
# a timeout, snapshot all containers, stop/remove them, prune dangling images.
# -----------------------------------------------------------------------------

import re
import subprocess
import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

import docker
from docker import DockerClient
from docker.errors import APIError, DockerException, NotFound
from rich.console import Console
from rich.panel import Panel

from shinydeploy.domain.models import ContainerRecord

console = Console()

WAKE_TIMEOUT_SECONDS = 60

_DOCKER_TIME = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(?P<frac>\d+))?(?P<tz>Z|[+-]\d{2}:\d{2})?$"
)


class DockerProviderError(Exception):
    """Raised when Docker connection fails and cannot be recovered."""

    pass


class BuildTimeoutError(Exception):
    """Raised when an image build exceeds its time limit."""

    def __init__(self, message: str, log: str = "") -> None:
        super().__init__(message)
        self.log = log


def parse_docker_timestamp(value: str | None) -> datetime | None:
    """
    Parse State.StartedAt ('2024-05-01T10:20:30.123456789Z').

    Docker reports nanoseconds; they are truncated to microseconds. The zero
    value '0001-01-01T00:00:00Z' (never started) yields None.
    """
    if not value:
        return None
    match = _DOCKER_TIME.match(value.strip())
    if not match:
        return None

    parsed = datetime.strptime(match.group("base"), "%Y-%m-%dT%H:%M:%S")
    if parsed.year <= 1:
        return None

    frac = match.group("frac")
    if frac:
        parsed = parsed.replace(microsecond=int(frac[:6].ljust(6, "0")))

    tz = match.group("tz")
    if tz and tz != "Z":
        sign = 1 if tz[0] == "+" else -1
        hours, minutes = int(tz[1:3]), int(tz[4:6])
        return parsed.replace(tzinfo=timezone(sign * timedelta(hours=hours, minutes=minutes)))
    return parsed.replace(tzinfo=timezone.utc)


class DockerProvider:
    """
    Docker SDK wrapper with auto-wake.

    Starts the docker service if it is installed but stopped, and halts with
    a clear panel if the engine still does not answer.
    """

    def __init__(self, auto_wake: bool = True, client: DockerClient | None = None) -> None:
        """
        Args:
            auto_wake: Start the docker service when the engine does not answer.
            client: Already connected client; no connection attempt is made.
        """
        self._auto_wake = auto_wake
        self._client: DockerClient | None = client if client is not None else self._connect()

    @staticmethod
    def _try_client() -> DockerClient | None:
        """A pinged client from the environment, or None."""
        try:
            client = docker.from_env()
            client.ping()
            return client
        except DockerException:
            return None

    def _wake_docker(self) -> DockerClient | None:
        """Start the docker service and poll the engine once a second."""
        console.print("[yellow][DOCKER] No answer from the engine, running 'systemctl start docker'[/yellow]")
        try:
            subprocess.run(["systemctl", "start", "docker"], check=False, timeout=WAKE_TIMEOUT_SECONDS)
        except (OSError, subprocess.SubprocessError) as e:
            console.print(f"[red][DOCKER] Could not start the docker service: {e}[/red]")
            return None

        with console.status(f"[yellow]Polling docker for {WAKE_TIMEOUT_SECONDS}s...[/yellow]", spinner="clock"):
            for _ in range(WAKE_TIMEOUT_SECONDS):
                client = self._try_client()
                if client is not None:
                    console.print("[green][DOCKER] Engine is up.[/green]")
                    return client
                time.sleep(1)

        console.print(f"[red][DOCKER] Still no engine after {WAKE_TIMEOUT_SECONDS}s[/red]")
        return None

    def _connect(self) -> DockerClient:
        """
        Raises:
            DockerProviderError: The engine is down and could not be started.
        """
        client = self._try_client()
        if client is None and self._auto_wake:
            client = self._wake_docker()

        if client is None:
            console.print(
                Panel(
                    "[bold red]Docker engine unavailable[/bold red]\n\n"
                    "- systemctl status docker\n"
                    "- the deploying user needs access to /var/run/docker.sock\n"
                    "- dockerd must also listen on tcp://127.0.0.1:2375 for ShinyProxy",
                    title="DOCKER HALT",
                    border_style="red",
                )
            )
            raise DockerProviderError("Docker engine is not reachable")

        console.print("[green][DOCKER] Connected[/green]")
        return client

    def get_client(self) -> DockerClient:
        """
        The client, reconnecting once if the engine went away.

        Raises:
            DockerProviderError: Reconnection was not possible.
        """
        if self.is_connected():
            return self._client

        console.print("[red][DOCKER] Lost the engine connection[/red]")
        if not self._auto_wake:
            raise DockerProviderError("Docker engine connection lost")
        self._client = self._connect()
        return self._client

    def is_connected(self) -> bool:
        if self._client is None:
            return False
        try:
            return bool(self._client.ping())
        except DockerException:
            return False

    # -------------------------------------------------------------------------
    # Images
    # -------------------------------------------------------------------------

    def build_image(self, context: Path, dockerfile: str, tag: str, timeout: int) -> tuple[bool, str]:
        """
        Build an image and collect its full output.

        The build stream runs in a worker thread; if it has not finished after
        timeout seconds the build is abandoned.

        Returns:
            (succeeded, build log text)

        Raises:
            BuildTimeoutError: The build exceeded timeout.
        """
        client = self.get_client()
        result: dict = {"ok": True, "lines": [], "error": None}

        def _run():
            try:
                for chunk in client.api.build(
                    path=str(context), dockerfile=dockerfile, tag=tag, rm=True, decode=True
                ):
                    if "stream" in chunk:
                        result["lines"].append(chunk["stream"])
                    if "error" in chunk:
                        result["ok"] = False
                        result["lines"].append(chunk["error"] + "\n")
            except (APIError, DockerException) as e:
                result["ok"] = False
                result["error"] = e
                result["lines"].append(f"{e}\n")

        thread = threading.Thread(target=_run, daemon=True)
        thread.start()
        thread.join(timeout=timeout)

        log = "".join(result["lines"])
        if thread.is_alive():
            console.print(f"[red][DOCKER] Build timeout ({timeout}s) - abandoning {tag}[/red]")
            raise BuildTimeoutError(f"Image build for {tag} timed out after {timeout}s", log=log)

        return result["ok"], log

    def remove_dangling_images(self) -> list[str]:
        """Force-remove every untagged image. Returns the removed ids."""
        client = self.get_client()
        try:
            dangling = client.images.list(filters={"dangling": True})
        except DockerException as e:
            raise DockerProviderError(f"Could not list dangling images: {e}") from e

        removed = []
        for image in dangling:
            try:
                client.images.remove(image.id, force=True)
                removed.append(image.id)
            except APIError as e:
                console.print(f"[yellow][DOCKER] Could not remove image {image.short_id}: {e}[/yellow]")
        return removed

    # -------------------------------------------------------------------------
    # Containers
    # -------------------------------------------------------------------------

    def list_containers(self) -> list[ContainerRecord]:
        """Snapshot of every container, running or not."""
        client = self.get_client()
        try:
            containers = client.containers.list(all=True)
        except DockerException as e:
            raise DockerProviderError(f"Could not list containers: {e}") from e

        records = []
        for container in containers:
            state = container.attrs.get("State", {}) or {}
            records.append(
                ContainerRecord(
                    id=container.id,
                    status=container.status,
                    name=container.name,
                    ports=sorted(container.ports or {}),
                    started_at=parse_docker_timestamp(state.get("StartedAt")),
                )
            )
        return records

    def stop_container(self, container_id: str) -> None:
        try:
            self.get_client().containers.get(container_id).stop()
        except NotFound:
            return

    def remove_container(self, container_id: str) -> None:
        try:
            self.get_client().containers.get(container_id).remove()
        except NotFound:
            return
