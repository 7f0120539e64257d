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
# THE PIPELINE - DEPLOYMENT ORCHESTRATOR
# -----------------------------------------------------------------------------
# Responsibility: Run the full deployment, in order, on this host:
#   host prerequisites -> ShinyProxy jar -> clone app -> inspect manifest
#   -> synthesize + build image -> application.yml + systemd unit
#   -> nginx vhost -> restart services -> cron sweep -> health probe
#
# Everything a step needs travels in the DeployContext; nothing relies on the
# process working directory or exported environment variables.
#
# Failure policy:
# - config / provisioning / clone / ShinyProxy errors abort the run
# - a failed image build is logged and the run carries on
# - the health probe only logs
# -----------------------------------------------------------------------------

import getpass
import os
import time
from dataclasses import dataclass
from pathlib import Path

import requests

from shinydeploy.core.config import HEALTH_CHECK_DELAY_SECONDS, HTTP_TIMEOUT_SECONDS, DeployConfig
from shinydeploy.core.deploy_log import LOG_FILE, DeployLog
from shinydeploy.core.foundry import BuildResult, Foundry
from shinydeploy.core.manifest import ManifestInspector
from shinydeploy.core.proxy import (
    NGINX_CONFIG_PATH,
    SHINYPROXY_PORT,
    SHINYPROXY_SERVICE,
    SYSTEMD_UNIT_PATH,
    ShinyProxyInstaller,
    render_application_yml,
    render_nginx_config,
    render_systemd_unit,
)
from shinydeploy.core.sweeper import MONITOR_SCRIPT, cron_entry, render_monitor_script
from shinydeploy.core.synthesizer import synthesize
from shinydeploy.domain.models import AppDescriptor
from shinydeploy.infra.cran import CranRegistry
from shinydeploy.infra.docker_client import DockerProvider
from shinydeploy.infra.git_client import GitError, GitProvider
from shinydeploy.infra.host import HostProvider, ProvisionError

APPLICATION_YML = "application.yml"
HTTP_PORT = 80


@dataclass
class DeployContext:
    """Paths, identity and configuration shared by every step."""

    workdir: Path
    app: AppDescriptor
    config: DeployConfig
    log: DeployLog
    user: str

    @classmethod
    def create(cls, config: DeployConfig, workdir: Path, user: str | None = None) -> "DeployContext":
        """
        Resolve the descriptor and open the deploy log.

        Raises:
            ConfigError: Before anything on disk is touched.
        """
        app = config.descriptor()
        workdir = Path(workdir).resolve()
        return cls(
            workdir=workdir,
            app=app,
            config=config,
            log=DeployLog(workdir / LOG_FILE),
            user=user or os.getenv("SUDO_USER") or getpass.getuser(),
        )

    @property
    def checkout_dir(self) -> Path:
        return self.workdir / self.app.repo_name

    @property
    def application_yml(self) -> Path:
        return self.workdir / APPLICATION_YML

    @property
    def monitor_script(self) -> Path:
        return self.workdir / MONITOR_SCRIPT


@dataclass
class DeployResult:
    """Summary of one pipeline run."""

    build: BuildResult
    server_ip: str
    healthy: bool


class DeployPipeline:
    """Sequential deployment of one application. Collaborators can be injected."""

    def __init__(
        self,
        ctx: DeployContext,
        host: HostProvider | None = None,
        git: GitProvider | None = None,
        docker: DockerProvider | None = None,
        registry: CranRegistry | None = None,
        systemd_unit_path: Path = SYSTEMD_UNIT_PATH,
        nginx_config_path: Path = NGINX_CONFIG_PATH,
        health_delay: int = HEALTH_CHECK_DELAY_SECONDS,
    ) -> None:
        self.ctx = ctx
        self._host = host or HostProvider(ctx.log)
        self._git = git or GitProvider()
        self._docker = docker
        self._registry = registry or CranRegistry()
        self._systemd_unit_path = Path(systemd_unit_path)
        self._nginx_config_path = Path(nginx_config_path)
        self._health_delay = health_delay

    @property
    def docker(self) -> DockerProvider:
        # Connect lazily: docker may only have been installed by provision_host()
        if self._docker is None:
            self._docker = DockerProvider()
        return self._docker

    def run(self) -> DeployResult:
        log = self.ctx.log
        log.log("Starting deployment...")

        self.provision_host()
        jar = self.install_proxy()
        self.clone_app()

        log.log(f"Author: {self.ctx.app.author}")
        log.log(f"Repo name: {self.ctx.app.repo_name}")
        log.log(f"Ref name: {self.ctx.app.ref_name}")
        log.log(f"inst dir: {self.ctx.app.install_subdirectory}")

        build = self.build_image()
        self.write_proxy_files(jar)
        server_ip = self.configure_web_server()
        self.restart_services()
        self.schedule_sweeper()
        healthy = self.health_check(server_ip)

        return DeployResult(build=build, server_ip=server_ip, healthy=healthy)

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def provision_host(self) -> None:
        self._host.ensure_java()
        self._host.ensure_docker(self.ctx.workdir)
        self._host.ensure_package("git", command="git")

    def install_proxy(self) -> Path:
        installer = ShinyProxyInstaller(self.ctx.workdir, self.ctx.log, self._host, self._git)
        return installer.ensure_jar(installer.latest_version())

    def clone_app(self) -> Path:
        app = self.ctx.app
        self.ctx.log.log(f"Cloning {app.repo_name} repository...")
        try:
            return self._git.clone(app.clone_url, self.ctx.checkout_dir, ref=app.ref_name)
        except GitError:
            self.ctx.log.error(
                f"Failed to clone {app.repo_name} repository. Full git clone command: "
                f"git clone -b {app.ref_name} --single-branch {app.clone_url} {app.repo_name}"
            )
            raise

    def build_image(self) -> BuildResult:
        log = self.ctx.log
        manifest = ManifestInspector(self._registry).inspect(self.ctx.checkout_dir, self.ctx.app.repo_name)

        if manifest.locked:
            log.log(f"Using renv for package management. R version: {manifest.r_version}")
        else:
            log.log("App does not use renv for package management. R version: latest.")
            if manifest.non_registry:
                log.log(f"Non-CRAN Packages: {' '.join(manifest.non_registry)}")

        log.log("Creating dockerfile...")
        spec = synthesize(self.ctx.app, manifest)

        foundry = Foundry(self.docker, log, self.ctx.workdir)
        return foundry.build(spec, self.ctx.app.image_name, manifest)

    def write_proxy_files(self, jar: Path) -> None:
        self.ctx.application_yml.write_text(render_application_yml(self.ctx.app))
        self.ctx.log.log(f"ShinyProxy configuration written: {self.ctx.application_yml}")

        self._systemd_unit_path.write_text(render_systemd_unit(self.ctx.workdir, jar, self.ctx.user))
        self.ctx.log.log(f"Service unit written: {self._systemd_unit_path}")

    def configure_web_server(self) -> str:
        """
        Install nginx and write the TLS virtual host.

        Returns:
            The server's IPv4 address.

        Raises:
            ProvisionError: The address could not be determined.
        """
        self._host.disable_apache()
        self._host.ensure_package("nginx", command="nginx")

        server_ip = self._host.server_ipv4()
        if not server_ip:
            self.ctx.log.error("Failed to retrieve the server's IPv4 address.")
            raise ProvisionError("Failed to retrieve the server's IPv4 address")

        self._nginx_config_path.write_text(render_nginx_config(self.ctx.config))
        self.ctx.log.log(f"Nginx configuration updated with server's IP: {server_ip}")
        return server_ip

    def _check_port(self, port: int, service: str) -> None:
        if self._host.port_in_use(port):
            self.ctx.log.warning(f"Port {port} is in use. Release it before starting {service}.")
        else:
            self.ctx.log.log(f"Port {port} is available.")

    def restart_services(self) -> None:
        host = self._host
        host.systemctl("reload", "nginx", check=False)
        host.systemctl("daemon-reload")

        host.systemctl("stop", SHINYPROXY_SERVICE, check=False)
        self._check_port(SHINYPROXY_PORT, SHINYPROXY_SERVICE)
        host.systemctl("start", SHINYPROXY_SERVICE)
        host.systemctl("enable", SHINYPROXY_SERVICE)

        host.systemctl("stop", "nginx", check=False)
        self._check_port(HTTP_PORT, "nginx")
        host.systemctl("start", "nginx")
        host.systemctl("enable", "nginx")

        for unit in (SHINYPROXY_SERVICE, "nginx"):
            state = "active" if host.is_active(unit) else "not active"
            self.ctx.log.log(f"{unit} service is {state}.")

    def schedule_sweeper(self) -> None:
        script = self.ctx.monitor_script
        script.write_text(render_monitor_script(self.ctx.workdir))
        script.chmod(0o755)
        self._host.install_cron_entry(cron_entry(script), marker=str(script), user=self.ctx.user)
        self.ctx.log.log("Monitoring script created and scheduled with cron.")

    def health_check(self, server_ip: str) -> bool:
        """Single probe after a settle delay; never retried."""
        self.ctx.log.log(f"Wait {self._health_delay} seconds...")
        time.sleep(self._health_delay)

        try:
            response = requests.get(f"http://{server_ip}", timeout=HTTP_TIMEOUT_SECONDS)
            status = response.status_code
        except requests.RequestException as e:
            self.ctx.log.warning(f"Deployment completed, but the application could not be reached: {e}")
            return False

        if status == 200:
            self.ctx.log.success("Deployment completed. The Shiny application is running correctly.")
            return True

        self.ctx.log.warning(
            f"Deployment completed, but the Shiny application might be experiencing issues "
            f"(HTTP status code: {status}). Check {LOG_FILE}"
        )
        return False


def run_deploy(config: DeployConfig, workdir: Path) -> DeployResult:
    """Build the context and run the pipeline (used by both CLI commands)."""
    ctx = DeployContext.create(config, workdir)
    return DeployPipeline(ctx).run()


__all__ = ["DeployContext", "DeployPipeline", "DeployResult", "run_deploy"]
