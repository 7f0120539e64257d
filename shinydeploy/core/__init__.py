# -----------------------------------------------------------------------------
# CORE LAYER
# -----------------------------------------------------------------------------
# The deployment logic of shinydeploy:
# - config: config.yml -> DeployConfig, environment tunables
# - DeployLog: append-only flight recorder (deploy_log.txt)
# - ManifestInspector: DESCRIPTION / renv.lock classification
# - synthesize: DockerfileSpec for the app (anchors, no text patching)
# - Foundry: build + single repair pass (core.foundry)
# - Sweeper: container reclaim rules (core.sweeper)
# - VersionChecker: upstream DESCRIPTION comparison
# - DeployPipeline: the full run (core.pipeline)
#
# Modules that talk to infra are imported by path to keep this package free
# of import cycles.
# -----------------------------------------------------------------------------

from .config import DeployConfig, load_config
from .deploy_log import DeployLog
from .dockerfile import DockerfileSpec, Instruction
from .manifest import ManifestInspector
from .synthesizer import synthesize
from .version_check import VersionCheck, VersionChecker

__all__ = [
    "DeployConfig", "load_config",
    "DeployLog",
    "DockerfileSpec", "Instruction",
    "ManifestInspector",
    "synthesize",
    "VersionCheck", "VersionChecker",
]
