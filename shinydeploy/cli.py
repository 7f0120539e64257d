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
# SHINYDEPLOY - COMMAND LINE INTERFACE
# -----------------------------------------------------------------------------
# Commands:
# - deploy <url> <inst_dir> [model_fn]: full deployment on this host
# - check: redeploy only when the upstream DESCRIPTION version changed
#          (intended for a periodic timer)
# - sweep: reclaim stale containers and dangling images (run from cron)
#
# Exit codes: 0 success, 1 halted on a fatal error, 2 usage.
# -----------------------------------------------------------------------------

import argparse
import sys
from pathlib import Path

# Load environment variables (tunables) from .env before the config module reads them
from dotenv import load_dotenv

load_dotenv()

from rich.console import Console
from rich.panel import Panel

from shinydeploy.core.config import CONFIG_PATH, INACTIVE_MINUTES, load_config
from shinydeploy.core.deploy_log import LOG_FILE, DeployLog
from shinydeploy.core.pipeline import run_deploy
from shinydeploy.core.proxy import ProxyError
from shinydeploy.core.sweeper import Sweeper
from shinydeploy.core.version_check import VersionChecker
from shinydeploy.domain.models import ConfigError
from shinydeploy.infra.docker_client import DockerProvider, DockerProviderError
from shinydeploy.infra.git_client import GitError
from shinydeploy.infra.host import ProvisionError

console = Console()

FATAL_ERRORS = (ConfigError, ProvisionError, GitError, DockerProviderError, ProxyError)


def _halt(error: Exception, workdir: Path | None = None) -> int:
    """Render the halt panel, record it in the deploy log and return exit status 1."""
    console.print(
        Panel(
            f"[bold red]{type(error).__name__}:[/bold red] {error}",
            title="DEPLOYMENT HALTED",
            border_style="red",
        )
    )
    if workdir is not None and workdir.is_dir():
        DeployLog(workdir / LOG_FILE).raw(f"DEPLOYMENT HALTED - {type(error).__name__}: {error}\n")
    return 1


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="shinydeploy", description="Deploy a Shiny application behind ShinyProxy")
    sub = p.add_subparsers(dest="cmd", required=True)

    s_deploy = sub.add_parser("deploy", help="Deploy an application to this host")
    s_deploy.add_argument("repository_url", help="GitHub URL including /tree/<ref>")
    s_deploy.add_argument("install_subdirectory", help="Directory inside the package holding the app")
    s_deploy.add_argument("model_install_function", nargs="?", default=None, help="R function run after install")
    s_deploy.add_argument("--workdir", type=Path, default=Path.cwd())
    s_deploy.add_argument("--config", type=Path, default=CONFIG_PATH)

    s_check = sub.add_parser("check", help="Redeploy if the upstream version changed")
    s_check.add_argument("--workdir", type=Path, default=Path.cwd())
    s_check.add_argument("--config", type=Path, default=CONFIG_PATH)

    s_sweep = sub.add_parser("sweep", help="Remove stale containers and dangling images")
    s_sweep.add_argument("--inactive-minutes", type=int, default=INACTIVE_MINUTES)

    return p


def _deploy(args: argparse.Namespace) -> int:
    overrides = {
        "github_repo_url": args.repository_url,
        "inst_dir": args.install_subdirectory,
        "model_function": args.model_install_function,
    }
    config = load_config(args.config, overrides=overrides)
    result = run_deploy(config, args.workdir)
    return 0 if result.build.success else 1


def _check(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    check = VersionChecker(config.descriptor(), args.workdir).check()
    if not check.should_deploy:
        console.print("[green][CHECK] No new version found. Skipping deployment.[/green]")
        return 0

    console.print("[cyan][CHECK] New version found. Deploying...[/cyan]")
    result = run_deploy(config, args.workdir)
    return 0 if result.build.success else 1


def _sweep(args: argparse.Namespace) -> int:
    report = Sweeper(DockerProvider(), args.inactive_minutes).sweep()
    return 1 if report.errors else 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    workdir = getattr(args, "workdir", None)

    handlers = {"deploy": _deploy, "check": _check, "sweep": _sweep}
    try:
        return handlers[args.cmd](args)
    except FATAL_ERRORS as e:
        return _halt(e, workdir)
    except KeyboardInterrupt:
        console.print("\n[yellow][SHINYDEPLOY] Interrupted[/yellow]")
        return 130


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
