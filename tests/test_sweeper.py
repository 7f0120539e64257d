# =============================================================================
# SHINYDEPLOY SWEEPER TESTS
# =============================================================================
# Tests for the container reclaim rules and the cron wiring.
# =============================================================================

from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from docker.errors import APIError

from shinydeploy.core.sweeper import (
    SweepAction,
    Sweeper,
    age_minutes,
    cron_entry,
    decide,
    render_monitor_script,
)
from shinydeploy.domain.models import ContainerRecord
from shinydeploy.infra.docker_client import DockerProvider

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def record(status="running", ports=("3838/tcp",), minutes_ago=5, cid="c1"):
    started = NOW - timedelta(minutes=minutes_ago) if minutes_ago is not None else None
    return ContainerRecord(id=cid, status=status, name=f"sp-{cid}", ports=list(ports), started_at=started)


class TestAgeMinutes:
    """Test age_minutes."""

    def test_floors(self):
        """Partial minutes are dropped."""
        assert age_minutes(NOW - timedelta(minutes=60, seconds=59), NOW) == 60


class TestDecide:
    """Test the per-container decision table."""

    def test_exited_removed(self):
        """Exited containers are removed."""
        assert decide(record(status="exited"), NOW) == SweepAction.REMOVE

    def test_exited_without_ports_removed(self):
        """Exited wins over the no-ports rule."""
        assert decide(record(status="exited", ports=()), NOW) == SweepAction.REMOVE

    def test_no_ports_stopped(self):
        """A container that exposes no port at all is stopped and removed."""
        assert decide(record(ports=()), NOW) == SweepAction.STOP_AND_REMOVE

    def test_exposed_port_reaches_age_rule(self):
        """Any exposed port, published or not, defers to the age rule."""
        assert decide(record(ports=("3838/tcp",), minutes_ago=5), NOW) == SweepAction.KEEP
        assert decide(record(ports=("3838/tcp",), minutes_ago=90), NOW, inactive_minutes=60) == (
            SweepAction.STOP_AND_REMOVE
        )

    def test_created_without_ports_stopped(self):
        """The no-ports rule applies to any non-exited status."""
        assert decide(record(status="created", ports=(), minutes_ago=None), NOW) == SweepAction.STOP_AND_REMOVE

    def test_running_past_threshold_stopped(self):
        """Running longer than the threshold is reclaimed."""
        assert decide(record(minutes_ago=61), NOW, inactive_minutes=60) == SweepAction.STOP_AND_REMOVE

    def test_running_at_threshold_kept(self):
        """The threshold is exclusive."""
        assert decide(record(minutes_ago=60), NOW, inactive_minutes=60) == SweepAction.KEEP

    def test_recent_running_kept(self):
        """Young running containers with ports are kept."""
        assert decide(record(minutes_ago=5), NOW) == SweepAction.KEEP

    def test_missing_start_time_kept(self):
        """No start time means no age, so the container is kept."""
        assert decide(record(minutes_ago=None), NOW) == SweepAction.KEEP

    def test_paused_with_ports_kept(self):
        """Only running containers are aged out."""
        assert decide(record(status="paused", minutes_ago=500), NOW) == SweepAction.KEEP


class TestSweeper:
    """Test Sweeper.sweep."""

    @pytest.fixture
    def docker(self):
        provider = MagicMock()
        provider.remove_dangling_images.return_value = ["sha256:dead"]
        return provider

    def test_applies_actions(self, docker):
        """Stop only where required; remove every reclaimed container."""
        docker.list_containers.return_value = [
            record(status="exited", cid="old"),
            record(ports=(), cid="portless"),
            record(minutes_ago=90, cid="stale"),
            record(minutes_ago=2, cid="fresh"),
        ]

        report = Sweeper(docker, inactive_minutes=60).sweep(now=NOW)

        assert report.removed == ["old", "portless", "stale"]
        assert report.kept == ["fresh"]
        assert report.images_removed == ["sha256:dead"]
        assert [c.args[0] for c in docker.stop_container.call_args_list] == ["portless", "stale"]
        assert [c.args[0] for c in docker.remove_container.call_args_list] == ["old", "portless", "stale"]

    def test_nothing_running(self, docker):
        """Exited containers are reclaimed even when nothing is running."""
        docker.list_containers.return_value = [record(status="exited", cid="a"), record(status="exited", cid="b")]

        report = Sweeper(docker).sweep(now=NOW)

        assert report.removed == ["a", "b"]
        docker.stop_container.assert_not_called()

    def test_error_on_one_container_continues(self, docker):
        """A failure is recorded and the sweep moves on."""
        docker.list_containers.return_value = [record(status="exited", cid="bad"), record(status="exited", cid="ok")]
        docker.remove_container.side_effect = [APIError("conflict"), None]

        report = Sweeper(docker).sweep(now=NOW)

        assert report.removed == ["ok"]
        assert len(report.errors) == 1
        assert report.errors[0].startswith("bad:")
        docker.remove_dangling_images.assert_called_once()

    def test_remove_attempted_when_stop_fails(self, docker):
        """A failed stop is recorded and the remove still runs."""
        docker.list_containers.return_value = [record(minutes_ago=90, cid="stale")]
        docker.stop_container.side_effect = APIError("timeout")

        report = Sweeper(docker, inactive_minutes=60).sweep(now=NOW)

        docker.remove_container.assert_called_once_with("stale")
        assert report.removed == ["stale"]
        assert report.errors == ["stale: stop failed: timeout"]

    def test_stop_and_remove_both_fail(self, docker):
        """Both failures are recorded and the container is not reported removed."""
        docker.list_containers.return_value = [record(minutes_ago=90, cid="stale")]
        docker.stop_container.side_effect = APIError("timeout")
        docker.remove_container.side_effect = APIError("conflict")

        report = Sweeper(docker, inactive_minutes=60).sweep(now=NOW)

        assert report.removed == []
        assert [e.split(":")[1].strip() for e in report.errors] == ["stop failed", "remove failed"]

    def test_unpublished_port_container_kept(self, mock_docker_client):
        """A young container exposing an unpublished port survives a real listing."""
        started = (NOW - timedelta(minutes=5)).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
        container = MagicMock(id="c1", status="running", ports={"3838/tcp": None})
        container.name = "sp-c1"
        container.attrs = {"State": {"StartedAt": started}}
        mock_docker_client.containers.list.return_value = [container]

        report = Sweeper(DockerProvider(client=mock_docker_client), inactive_minutes=60).sweep(now=NOW)

        assert report.kept == ["c1"]
        mock_docker_client.containers.get.assert_not_called()

    def test_empty_host(self, docker):
        """No containers still prunes dangling images."""
        docker.list_containers.return_value = []
        report = Sweeper(docker).sweep(now=NOW)

        assert report.removed == []
        assert report.images_removed == ["sha256:dead"]


class TestCronWiring:
    """Test the monitor script and cron entry."""

    def test_monitor_script(self):
        """The script runs the sweep from the working directory."""
        script = render_monitor_script(Path("/srv/app"), inactive_minutes=45, python="/usr/bin/python3")

        assert script.startswith("#!/usr/bin/env bash\n")
        assert "cd /srv/app || exit 1" in script
        assert "/usr/bin/python3 -m shinydeploy sweep --inactive-minutes 45 >> sweep_log.txt 2>&1" in script

    def test_cron_entry(self):
        """Every ten minutes."""
        assert cron_entry(Path("/srv/app/monitor.sh")) == "*/10 * * * * /srv/app/monitor.sh"
