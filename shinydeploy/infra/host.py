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
# HOST INFRASTRUCTURE - Packages, Services, Scheduler, Network
# -----------------------------------------------------------------------------
# Responsibility: Every direct interaction with the Ubuntu host:
# - apt/dpkg: idempotent "ensure installed"
# - systemd: start/stop/enable/reload/is-active
# - cron: one entry for the container sweep
# - network: public IPv4 lookup and local port checks
#
# Command output goes to the deploy log, never to the console.
# -----------------------------------------------------------------------------

import re
import shutil
import socket
import subprocess
from pathlib import Path

import requests
from rich.console import Console

from shinydeploy.core.config import COMMAND_TIMEOUT_SECONDS, HTTP_TIMEOUT_SECONDS
from shinydeploy.core.deploy_log import DeployLog

console = Console()

DOCKER_INSTALL_SCRIPT_URL = "https://get.docker.com"
DOCKER_SERVICE_FILE = Path("/lib/systemd/system/docker.service")
# dockerd also listens on localhost TCP so ShinyProxy can reach it
DOCKER_EXEC_START = "ExecStart=/usr/bin/dockerd -H unix:// -D -H tcp://127.0.0.1:2375"

IP_LOOKUP_URL = "https://ipinfo.io/ip"

_INET = re.compile(r"inet\s+(\d+(?:\.\d+){3})")


class ProvisionError(Exception):
    """Raised when a host package or service operation fails."""

    pass


class HostProvider:
    """
    Thin wrapper around apt, systemctl, crontab and friends.

    Every call is bounded by a timeout and logged to the deploy log.
    """

    def __init__(self, log: DeployLog, timeout: int = COMMAND_TIMEOUT_SECONDS) -> None:
        self._log = log
        self._timeout = timeout

    def _run(
        self, cmd: list[str], check: bool = True, input: str | None = None, cwd: Path | None = None
    ) -> subprocess.CompletedProcess:
        """
        Run a host command, appending its output to the deploy log.

        Raises:
            ProvisionError: If check is set and the command fails or times out.
        """
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, input=input, cwd=cwd, timeout=self._timeout
            )
        except subprocess.TimeoutExpired:
            raise ProvisionError(f"Command timed out ({self._timeout}s limit): {' '.join(cmd)}")
        except OSError as e:
            raise ProvisionError(f"Command could not start: {' '.join(cmd)}: {e}")

        self._log.raw(result.stdout)
        self._log.raw(result.stderr)

        if check and result.returncode != 0:
            raise ProvisionError(f"Command failed ({result.returncode}): {' '.join(cmd)}")
        return result

    def run_command(self, cmd: list[str], cwd: Path | None = None) -> None:
        """Run an arbitrary build command (e.g. maven), failing on non-zero exit."""
        self._run(cmd, cwd=cwd)

    # -------------------------------------------------------------------------
    # Packages
    # -------------------------------------------------------------------------

    def is_package_installed(self, name: str) -> bool:
        return self._run(["dpkg", "-s", name], check=False).returncode == 0

    @staticmethod
    def command_exists(name: str) -> bool:
        return shutil.which(name) is not None

    def apt_update(self) -> None:
        self._run(["apt-get", "update"])

    def install_packages(self, *names: str) -> None:
        self._run(["apt-get", "install", "-y", *names])

    def ensure_package(self, name: str, command: str | None = None) -> bool:
        """
        Install name unless already present.

        Args:
            name: apt package.
            command: Executable whose presence counts as installed.

        Returns:
            True if something was installed.
        """
        present = self.command_exists(command) if command else self.is_package_installed(name)
        if present:
            self._log.log(f"{name} is already installed. Skipping installation.")
            return False

        self._log.log(f"Installing {name}...")
        try:
            self.install_packages(name)
        except ProvisionError:
            self._log.error(f"Failed to install {name}")
            raise
        self._log.success(f"{name} installed successfully.")
        return True

    def ensure_java(self) -> None:
        """OpenJDK 8 runs the ShinyProxy jar and the maven build."""
        if self.is_package_installed("openjdk-8-jdk"):
            self._log.log("Java JDK is already installed. Skipping installation.")
            return
        self._log.log("Installing Java JDK...")
        self.apt_update()
        self.install_packages("ca-certificates", "curl", "gnupg")
        self.install_packages("openjdk-8-jdk")
        self._log.success("Java JDK installed successfully.")

    def ensure_docker(self, workdir: Path) -> None:
        """Install docker-ce via get.docker.com and expose the daemon on localhost:2375."""
        if self.is_package_installed("docker-ce"):
            self._log.log("Docker is already installed. Skipping installation.")
            return

        self._log.log("Installing Docker...")
        try:
            response = requests.get(DOCKER_INSTALL_SCRIPT_URL, timeout=HTTP_TIMEOUT_SECONDS)
            response.raise_for_status()
        except requests.RequestException as e:
            raise ProvisionError(f"Failed to download Docker installation script: {e}")

        script = Path(workdir) / "get-docker.sh"
        script.write_text(response.text)
        self._run(["sh", str(script)])
        self.install_packages("docker-compose")

        self.configure_docker_service(DOCKER_SERVICE_FILE)
        self.systemctl("daemon-reload")
        self.systemctl("restart", "docker")
        self._log.success("Docker installed and configured successfully.")

    def configure_docker_service(self, service_file: Path) -> None:
        """Point ExecStart at a daemon listening on both the socket and tcp://127.0.0.1:2375."""
        try:
            text = Path(service_file).read_text()
        except OSError as e:
            raise ProvisionError(f"Failed to read {service_file}: {e}")
        updated = re.sub(r"^ExecStart=.*$", DOCKER_EXEC_START, text, flags=re.MULTILINE)
        Path(service_file).write_text(updated)

    # -------------------------------------------------------------------------
    # Services
    # -------------------------------------------------------------------------

    def systemctl(self, action: str, unit: str | None = None, check: bool = True) -> bool:
        cmd = ["systemctl", action] + ([unit] if unit else [])
        return self._run(cmd, check=check).returncode == 0

    def is_active(self, unit: str) -> bool:
        return self._run(["systemctl", "is-active", "--quiet", unit], check=False).returncode == 0

    def disable_apache(self) -> None:
        """Free port 80 for nginx."""
        if not self.command_exists("apache2"):
            self._log.log("Apache2 is not installed.")
            return
        self.systemctl("stop", "apache2", check=False)
        self.systemctl("disable", "apache2", check=False)
        self._log.log("Apache2 stopped and disabled.")

    # -------------------------------------------------------------------------
    # Scheduler
    # -------------------------------------------------------------------------

    def install_cron_entry(self, entry: str, marker: str, user: str) -> None:
        """
        Register entry in user's crontab, replacing earlier lines containing marker.

        Other crontab lines are kept.
        """
        current = self._run(["crontab", "-u", user, "-l"], check=False)
        lines = current.stdout.splitlines() if current.returncode == 0 else []
        kept = [line for line in lines if marker not in line]
        kept.append(entry)
        self._run(["crontab", "-u", user, "-"], input="\n".join(kept) + "\n")

    # -------------------------------------------------------------------------
    # Network
    # -------------------------------------------------------------------------

    @staticmethod
    def port_in_use(port: int) -> bool:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            try:
                s.bind(("", port))
                return False
            except OSError:
                return True

    def local_ipv4(self) -> str:
        """First non-loopback IPv4 from 'ip -4 addr show', empty if none."""
        result = self._run(["ip", "-4", "addr", "show"], check=False)
        for address in _INET.findall(result.stdout or ""):
            if not address.startswith("127."):
                return address
        return ""

    def server_ipv4(self) -> str:
        """Public IPv4 from ipinfo.io, falling back to the local interfaces."""
        try:
            response = requests.get(IP_LOOKUP_URL, timeout=HTTP_TIMEOUT_SECONDS)
            if response.status_code == 200 and response.text.strip():
                return response.text.strip()
        except requests.RequestException as e:
            self._log.warning(f"IP lookup failed ({e}), inspecting local interfaces")
        return self.local_ipv4()
