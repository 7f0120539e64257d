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
# PROXY LAYER - SHINYPROXY + NGINX
# -----------------------------------------------------------------------------
# Responsibility: Everything between the internet and the app container.
# - ShinyProxyInstaller: build the ShinyProxy jar from its latest release
# - render_application_yml: the ShinyProxy spec (one app, port 4848)
# - render_systemd_unit: long-running my-shinyproxy service
# - render_nginx_config: TLS virtual host forwarding to ShinyProxy
# -----------------------------------------------------------------------------

import shutil
from pathlib import Path

import yaml

from shinydeploy.core.config import DOCKER_URL, DeployConfig
from shinydeploy.core.deploy_log import DeployLog
from shinydeploy.core.synthesizer import APP_PORT, run_app_command
from shinydeploy.domain.models import AppDescriptor
from shinydeploy.infra.git_client import GitError, GitProvider, latest_release
from shinydeploy.infra.host import HostProvider, ProvisionError

SHINYPROXY_OWNER = "openanalytics"
SHINYPROXY_REPO = "shinyproxy"
SHINYPROXY_PORT = 4848
SHINYPROXY_SERVICE = "my-shinyproxy"
SYSTEMD_UNIT_PATH = Path(f"/etc/systemd/system/{SHINYPROXY_SERVICE}.service")
NGINX_CONFIG_PATH = Path("/etc/nginx/sites-enabled/default")

HEARTBEAT_RATE_MS = 10000
HEARTBEAT_TIMEOUT_MS = 60000
CONTAINER_WAIT_MS = 50000
PORT_RANGE_START = 50000


class ProxyError(Exception):
    """Raised when ShinyProxy cannot be obtained or built."""

    pass


def jar_name(version: str) -> str:
    return f"shinyproxy-{version}-exec.jar"


class ShinyProxyInstaller:
    """
    Produces shinyproxy-<version>-exec.jar in the working directory.

    Each stage is skipped when its output already exists.
    """

    def __init__(self, workdir: Path, log: DeployLog, host: HostProvider, git: GitProvider) -> None:
        self._workdir = Path(workdir)
        self._log = log
        self._host = host
        self._git = git

    @property
    def source_dir(self) -> Path:
        return self._workdir / SHINYPROXY_REPO

    def latest_version(self) -> str:
        try:
            version = latest_release(SHINYPROXY_OWNER, SHINYPROXY_REPO)
        except GitError as e:
            raise ProxyError(f"Cannot determine the latest ShinyProxy release: {e}")
        self._log.log(f"ShinyProxy latest release: {version}")
        return version

    def ensure_jar(self, version: str) -> Path:
        """
        Clone, build and copy the ShinyProxy jar for version.

        Raises:
            ProxyError: Clone, maven install or build failed.
        """
        target = self._workdir / jar_name(version)
        if target.exists():
            self._log.log("ShinyProxy JAR file already exists. Skipping build.")
            return target

        built = self.source_dir / "target" / jar_name(version)
        try:
            if not self.source_dir.exists():
                self._log.log("Cloning ShinyProxy repository...")
                self._git.clone(f"https://github.com/{SHINYPROXY_OWNER}/{SHINYPROXY_REPO}.git", self.source_dir)
            else:
                self._log.log("ShinyProxy repository is already cloned. Skipping cloning.")

            if not built.exists():
                self._host.ensure_package("maven", command="mvn")
                self._log.log("Building ShinyProxy...")
                self._host.run_command(["mvn", "-U", "clean", "install"], cwd=self.source_dir)
            else:
                self._log.log("ShinyProxy is already built. Skipping build process.")
        except (GitError, ProvisionError) as e:
            self._log.error(f"Failed to build ShinyProxy: {e}")
            raise ProxyError(str(e))

        if not built.exists():
            raise ProxyError(f"Build finished but {built} is missing")

        shutil.copy2(built, target)
        target.chmod(target.stat().st_mode | 0o100)
        self._log.success("ShinyProxy JAR file copied successfully.")
        return target


def render_application_yml(app: AppDescriptor, docker_url: str = DOCKER_URL) -> str:
    """ShinyProxy configuration exposing the single app as spec 'app'."""
    spec = {
        "proxy": {
            "title": app.repo_name,
            "hide-navbar": True,
            "heartbeat-rate": HEARTBEAT_RATE_MS,
            "heartbeat-timeout": HEARTBEAT_TIMEOUT_MS,
            "port": SHINYPROXY_PORT,
            "container-wait-time": CONTAINER_WAIT_MS,
            "authentication": "none",
            "docker": {"url": docker_url, "port-range-start": PORT_RANGE_START},
            "specs": [
                {
                    "id": "app",
                    "port": APP_PORT,
                    "display-name": app.repo_name,
                    "container-cmd": run_app_command(app.repo_name),
                    "container-image": app.image_name,
                }
            ],
        },
        "logging": {"file": {"name": "shinyproxy.log"}},
    }
    return yaml.safe_dump(spec, sort_keys=False, default_flow_style=False)


def render_systemd_unit(workdir: Path, jar: Path, user: str) -> str:
    return f"""
[Unit]
Description=My ShinyProxy
After=network-online.target docker.service

[Service]
User={user}
WorkingDirectory={workdir}
ExecStart=/usr/bin/java -jar {jar}
Restart=always
StandardOutput=journal
StandardError=journal
SyslogIdentifier={SHINYPROXY_SERVICE}

[Install]
WantedBy=multi-user.target
""".lstrip()


def render_nginx_config(config: DeployConfig, upstream_port: int = SHINYPROXY_PORT) -> str:
    """HTTP -> HTTPS redirect plus a TLS vhost proxying (with websockets) to ShinyProxy."""
    name = config.server_name
    log_name = name.split(".")[0]
    return f"""map $http_upgrade $connection_upgrade {{
    default upgrade;
    '' close;
}}

server {{
    listen 80;
    server_name {name};
    return 301 https://{name}$request_uri;
}}

server {{
    server_name {name};
    listen 443 ssl;
    ssl_session_timeout  5m;
    ssl_protocols  TLSv1.2 TLSv1.3;
    ssl_ciphers  HIGH:!aNULL:!MD5;
    ssl_prefer_server_ciphers   on;

    ssl_certificate         {config.ssl_certificate_path};
    ssl_certificate_key     {config.ssl_certificate_key_path};

    access_log /var/log/nginx/{log_name}.log;
    error_log /var/log/nginx/{log_name}-error.log error;

    location / {{
        proxy_set_header    Host $host;
        proxy_set_header    X-Real-IP $remote_addr;
        proxy_set_header    X-Forwarded-For $proxy_add_x_forwarded_for;
        proxy_set_header    X-Forwarded-Proto $scheme;
        proxy_pass          http://localhost:{upstream_port}/app_direct/app/;
        proxy_read_timeout  20d;
        proxy_buffering off;

        proxy_set_header Upgrade $http_upgrade;
        proxy_set_header Connection $connection_upgrade;
        proxy_http_version 1.1;

        proxy_redirect      / $scheme://$host/;
    }}
}}
"""
