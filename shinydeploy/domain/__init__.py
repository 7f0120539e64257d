# -----------------------------------------------------------------------------
# DOMAIN LAYER
# -----------------------------------------------------------------------------
# Contains the deployment descriptors (Pydantic models) shared by the
# synthesizer, the foundry, the sweeper and the version checker.
# -----------------------------------------------------------------------------

from .models import (
    AppDescriptor,
    ConfigError,
    ContainerRecord,
    DependencyManifest,
    LockEntry,
    VersionState,
    derive_image_name,
)

__all__ = [
    "AppDescriptor",
    "ConfigError",
    "ContainerRecord",
    "DependencyManifest",
    "LockEntry",
    "VersionState",
    "derive_image_name",
]
