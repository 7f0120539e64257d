# -----------------------------------------------------------------------------
# INFRASTRUCTURE LAYER
# -----------------------------------------------------------------------------
# Contains low-level infrastructure wrappers:
# - DockerProvider: Docker SDK wrapper with auto-wake and build watchdog
# - GitProvider: git clone + GitHub release lookup (infra.git_client)
# - HostProvider: apt, systemd, cron and network (infra.host)
# - CranRegistry: CRAN PACKAGES index (infra.cran)
# -----------------------------------------------------------------------------

from .docker_client import BuildTimeoutError, DockerProvider, DockerProviderError

__all__ = ["BuildTimeoutError", "DockerProvider", "DockerProviderError"]
