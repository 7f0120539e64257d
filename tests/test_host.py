# =============================================================================
# SHINYDEPLOY HOST TESTS
# =============================================================================
# Tests for apt, systemd, cron and network helpers. subprocess.run is patched
# throughout; nothing touches the real host.
# =============================================================================

import socket
import subprocess
from unittest.mock import MagicMock, patch

import pytest
import requests

from conftest import completed

from shinydeploy.infra.host import DOCKER_EXEC_START, HostProvider, ProvisionError


@pytest.fixture
def host(deploy_log):
    return HostProvider(deploy_log, timeout=5)


class TestPackages:
    """Test package installation helpers."""

    def test_ensure_package_skips_when_command_exists(self, host):
        """A present executable means nothing is installed."""
        with patch("shinydeploy.infra.host.shutil.which", return_value="/usr/bin/git"), \
             patch("shinydeploy.infra.host.subprocess.run") as mock_run:
            assert host.ensure_package("git", command="git") is False

        mock_run.assert_not_called()

    def test_ensure_package_installs(self, host):
        """A missing executable triggers apt-get install -y."""
        with patch("shinydeploy.infra.host.shutil.which", return_value=None), \
             patch("shinydeploy.infra.host.subprocess.run", return_value=completed()) as mock_run:
            assert host.ensure_package("nginx", command="nginx") is True

        assert mock_run.call_args[0][0] == ["apt-get", "install", "-y", "nginx"]

    def test_ensure_package_uses_dpkg_without_command(self, host):
        """Without an executable name dpkg decides."""
        with patch("shinydeploy.infra.host.subprocess.run", return_value=completed()) as mock_run:
            assert host.ensure_package("libxml2-dev") is False

        assert mock_run.call_args[0][0] == ["dpkg", "-s", "libxml2-dev"]

    def test_install_failure(self, host, deploy_log):
        """A failing apt-get raises ProvisionError and is logged."""
        with patch("shinydeploy.infra.host.shutil.which", return_value=None), \
             patch("shinydeploy.infra.host.subprocess.run", return_value=completed(100, stderr="E: Unable")):
            with pytest.raises(ProvisionError):
                host.ensure_package("nginx", command="nginx")

        assert "Failed to install nginx" in deploy_log.path.read_text()
        assert "E: Unable" in deploy_log.path.read_text()

    def test_timeout(self, host):
        """A hung command raises ProvisionError."""
        with patch(
            "shinydeploy.infra.host.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="apt-get", timeout=5),
        ):
            with pytest.raises(ProvisionError, match="timed out"):
                host.apt_update()

    def test_ensure_java_skips_when_installed(self, host):
        """An installed JDK is left alone."""
        with patch("shinydeploy.infra.host.subprocess.run", return_value=completed()) as mock_run:
            host.ensure_java()

        mock_run.assert_called_once()
        assert mock_run.call_args[0][0] == ["dpkg", "-s", "openjdk-8-jdk"]

    def test_ensure_docker_skips_when_installed(self, host, tmp_path):
        """docker-ce present means no download."""
        with patch("shinydeploy.infra.host.subprocess.run", return_value=completed()), \
             patch("shinydeploy.infra.host.requests.get") as mock_get:
            host.ensure_docker(tmp_path)

        mock_get.assert_not_called()

    def test_ensure_docker_download_failure(self, host, tmp_path):
        """A failed script download raises ProvisionError."""
        with patch("shinydeploy.infra.host.subprocess.run", return_value=completed(1)), \
             patch("shinydeploy.infra.host.requests.get", side_effect=requests.ConnectionError("offline")):
            with pytest.raises(ProvisionError, match="Docker installation script"):
                host.ensure_docker(tmp_path)


class TestDockerService:
    """Test configure_docker_service."""

    def test_rewrites_exec_start(self, host, tmp_path):
        """ExecStart is replaced so dockerd also listens on localhost TCP."""
        unit = tmp_path / "docker.service"
        unit.write_text("[Service]\nExecStart=/usr/bin/dockerd -H fd://\nRestart=always\n")

        host.configure_docker_service(unit)

        assert unit.read_text() == f"[Service]\n{DOCKER_EXEC_START}\nRestart=always\n"

    def test_missing_unit(self, host, tmp_path):
        """A missing unit file raises ProvisionError."""
        with pytest.raises(ProvisionError):
            host.configure_docker_service(tmp_path / "absent.service")


class TestServices:
    """Test systemctl helpers."""

    def test_systemctl_result(self, host):
        """systemctl returns whether the command succeeded."""
        with patch("shinydeploy.infra.host.subprocess.run", return_value=completed(3)):
            assert host.systemctl("stop", "my-shinyproxy", check=False) is False

    def test_systemctl_check_raises(self, host):
        """A checked failure raises ProvisionError."""
        with patch("shinydeploy.infra.host.subprocess.run", return_value=completed(1)):
            with pytest.raises(ProvisionError):
                host.systemctl("start", "nginx")

    def test_is_active(self, host):
        """is-active maps the exit status to a bool."""
        with patch("shinydeploy.infra.host.subprocess.run", return_value=completed(0)) as mock_run:
            assert host.is_active("nginx") is True
        assert mock_run.call_args[0][0] == ["systemctl", "is-active", "--quiet", "nginx"]

    def test_disable_apache_when_absent(self, host):
        """Nothing to stop when apache2 is not installed."""
        with patch("shinydeploy.infra.host.shutil.which", return_value=None), \
             patch("shinydeploy.infra.host.subprocess.run") as mock_run:
            host.disable_apache()
        mock_run.assert_not_called()


class TestCron:
    """Test install_cron_entry."""

    def test_replaces_only_own_entry(self, host):
        """Other crontab lines survive; our previous entry is replaced."""
        existing = "0 3 * * * /usr/local/bin/backup.sh\n*/10 * * * * /srv/app/monitor.sh\n"
        with patch(
            "shinydeploy.infra.host.subprocess.run", side_effect=[completed(stdout=existing), completed()]
        ) as mock_run:
            host.install_cron_entry("*/10 * * * * /srv/app/monitor.sh", marker="/srv/app/monitor.sh", user="ubuntu")

        write = mock_run.call_args_list[1]
        assert write[0][0] == ["crontab", "-u", "ubuntu", "-"]
        assert write[1]["input"] == "0 3 * * * /usr/local/bin/backup.sh\n*/10 * * * * /srv/app/monitor.sh\n"

    def test_empty_crontab(self, host):
        """'no crontab for user' starts a fresh one."""
        with patch(
            "shinydeploy.infra.host.subprocess.run",
            side_effect=[completed(1, stderr="no crontab for ubuntu"), completed()],
        ) as mock_run:
            host.install_cron_entry("*/10 * * * * /srv/app/monitor.sh", marker="/srv/app/monitor.sh", user="ubuntu")

        assert mock_run.call_args_list[1][1]["input"] == "*/10 * * * * /srv/app/monitor.sh\n"


class TestNetwork:
    """Test address and port helpers."""

    def test_port_in_use(self):
        """A port held by a listening socket is reported in use."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(("", 0))
            s.listen(1)
            assert HostProvider.port_in_use(s.getsockname()[1]) is True

    def test_local_ipv4_skips_loopback(self, host):
        """The first non-loopback address wins."""
        output = (
            "1: lo: <LOOPBACK,UP>\n    inet 127.0.0.1/8 scope host lo\n"
            "2: eth0: <BROADCAST>\n    inet 10.0.0.5/24 brd 10.0.0.255 scope global eth0\n"
        )
        with patch("shinydeploy.infra.host.subprocess.run", return_value=completed(stdout=output)):
            assert host.local_ipv4() == "10.0.0.5"

    def test_server_ipv4_from_lookup(self, host):
        """The public address comes from the lookup service."""
        with patch("shinydeploy.infra.host.requests.get", return_value=MagicMock(status_code=200, text="203.0.113.7\n")):
            assert host.server_ipv4() == "203.0.113.7"

    def test_server_ipv4_fallback(self, host):
        """A failed lookup falls back to local interfaces."""
        with patch("shinydeploy.infra.host.requests.get", side_effect=requests.ConnectionError("offline")), \
             patch.object(HostProvider, "local_ipv4", return_value="10.0.0.5"):
            assert host.server_ipv4() == "10.0.0.5"

    def test_server_ipv4_empty(self, host):
        """No address anywhere yields an empty string."""
        with patch("shinydeploy.infra.host.requests.get", return_value=MagicMock(status_code=500, text="")), \
             patch("shinydeploy.infra.host.subprocess.run", return_value=completed(stdout="")):
            assert host.server_ipv4() == ""
