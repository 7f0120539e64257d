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
# THE SWEEPER - CONTAINER LIFECYCLE RECONCILER
# -----------------------------------------------------------------------------
# Responsibility: Reclaim containers ShinyProxy no longer needs. Runs from
# cron every 10 minutes, independently of deployments.
#
# Rules, per container, first match wins:
# 1. exited                                    -> remove
# 2. not exited, no ports                      -> stop + remove
# 3. running, ports, started > threshold ago   -> stop + remove
# 4. anything else                             -> keep
# Afterwards every dangling image is removed.
#
# Age since start is the only liveness signal; a long session on the live
# app container is reclaimed like any other.
# -----------------------------------------------------------------------------

import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from docker.errors import DockerException
from rich.console import Console

from shinydeploy.core.config import INACTIVE_MINUTES
from shinydeploy.domain.models import ContainerRecord
from shinydeploy.infra.docker_client import DockerProvider

console = Console()

CRON_SCHEDULE = "*/10 * * * *"
MONITOR_SCRIPT = "monitor.sh"
SWEEP_LOG = "sweep_log.txt"


class SweepAction(str, Enum):
    REMOVE = "remove"
    STOP_AND_REMOVE = "stop_and_remove"
    KEEP = "keep"


@dataclass
class SweepReport:
    """What one sweep did."""

    removed: list[str] = field(default_factory=list)
    kept: list[str] = field(default_factory=list)
    images_removed: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def age_minutes(started_at: datetime, now: datetime) -> int:
    """Whole minutes since started_at (floored)."""
    return int((now - started_at).total_seconds() // 60)


def decide(record: ContainerRecord, now: datetime, inactive_minutes: int = INACTIVE_MINUTES) -> SweepAction:
    """Apply the sweep rules to one container."""
    if record.status == "exited":
        return SweepAction.REMOVE

    if not record.ports:
        return SweepAction.STOP_AND_REMOVE

    if (
        record.status == "running"
        and record.started_at is not None
        and age_minutes(record.started_at, now) > inactive_minutes
    ):
        return SweepAction.STOP_AND_REMOVE

    return SweepAction.KEEP


class Sweeper:
    """Runs one reconciliation sweep against the docker engine."""

    def __init__(self, docker: DockerProvider, inactive_minutes: int = INACTIVE_MINUTES) -> None:
        self._docker = docker
        self._inactive_minutes = inactive_minutes

    def sweep(self, now: datetime | None = None) -> SweepReport:
        now = now or datetime.now(timezone.utc)
        report = SweepReport()

        containers = self._docker.list_containers()
        console.print(
            f"[cyan][SWEEPER] {len(containers)} containers, threshold {self._inactive_minutes} min[/cyan]"
        )

        for record in containers:
            action = decide(record, now, self._inactive_minutes)
            if action == SweepAction.KEEP:
                report.kept.append(record.id)
                continue

            self._reclaim(record, action, report)

        report.images_removed = self._docker.remove_dangling_images()

        console.print(
            f"[green][SWEEPER] Removed {len(report.removed)} containers, "
            f"{len(report.images_removed)} dangling images[/green]"
        )
        return report

    def _reclaim(self, record: ContainerRecord, action: SweepAction, report: SweepReport) -> None:
        """Stop (when asked) then remove one container. Each step is attempted on its own."""
        if action == SweepAction.STOP_AND_REMOVE:
            try:
                self._docker.stop_container(record.id)
            except DockerException as e:
                self._record_failure(record, "stop", e, report)

        try:
            self._docker.remove_container(record.id)
        except DockerException as e:
            self._record_failure(record, "remove", e, report)
            return

        report.removed.append(record.id)
        console.print(f"[yellow][SWEEPER] {action.value}: {record.name} ({record.id[:12]})[/yellow]")

    @staticmethod
    def _record_failure(record: ContainerRecord, step: str, error: DockerException, report: SweepReport) -> None:
        report.errors.append(f"{record.id}: {step} failed: {error}")
        console.print(f"[red][SWEEPER] Failed to {step} {record.name}: {error}[/red]")


def render_monitor_script(workdir: Path, inactive_minutes: int = INACTIVE_MINUTES, python: str | None = None) -> str:
    """Shell script cron runs to trigger a sweep."""
    python = python or sys.executable
    return (
        "#!/usr/bin/env bash\n"
        "# Reclaims stale ShinyProxy containers and dangling images.\n"
        f"cd {workdir} || exit 1\n"
        f"{python} -m shinydeploy sweep --inactive-minutes {inactive_minutes} >> {SWEEP_LOG} 2>&1\n"
    )


def cron_entry(script: Path) -> str:
    return f"{CRON_SCHEDULE} {script}"
