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
# CONFIGURATION
# -----------------------------------------------------------------------------
# Responsibility: Load config.yml into a validated DeployConfig and expose the
# timeouts / thresholds that can be tuned through the environment.
#
# Environment Variables:
# - SHINYDEPLOY_BUILD_TIMEOUT: docker build limit in seconds (default 3600)
# - SHINYDEPLOY_HTTP_TIMEOUT: limit for every HTTP request (default 30)
# - SHINYDEPLOY_COMMAND_TIMEOUT: limit for apt/git/mvn/systemctl (default 1800)
# - SHINYDEPLOY_INACTIVE_MINUTES: sweeper age threshold (default 60)
# - SHINYDEPLOY_HEALTH_DELAY: wait before the post-deploy probe (default 10)
# - SHINYDEPLOY_DOCKER_URL: engine URL handed to ShinyProxy
# -----------------------------------------------------------------------------

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from rich.console import Console

from shinydeploy.domain.models import AppDescriptor, ConfigError

console = Console()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


BUILD_TIMEOUT_SECONDS = _env_int("SHINYDEPLOY_BUILD_TIMEOUT", 3600)
HTTP_TIMEOUT_SECONDS = _env_int("SHINYDEPLOY_HTTP_TIMEOUT", 30)
COMMAND_TIMEOUT_SECONDS = _env_int("SHINYDEPLOY_COMMAND_TIMEOUT", 1800)
INACTIVE_MINUTES = _env_int("SHINYDEPLOY_INACTIVE_MINUTES", 60)
HEALTH_CHECK_DELAY_SECONDS = _env_int("SHINYDEPLOY_HEALTH_DELAY", 10)
DOCKER_URL = os.getenv("SHINYDEPLOY_DOCKER_URL", "http://localhost:2375")

CONFIG_PATH = Path("config.yml")

# Sentinel used by config.yml for "no model function"
NULL_SENTINEL = "NULL"


class DeployConfig(BaseModel):
    """
    Validated contents of config.yml.

    Only github_repo_url and inst_dir drive the build; the server_name and
    certificate paths are needed once nginx is configured.
    """

    github_repo_url: str = Field(..., min_length=1)
    inst_dir: str = Field(..., min_length=1)
    model_function: str | None = None
    server_name: str = Field(..., min_length=1)
    ssl_certificate_path: str = Field(..., min_length=1)
    ssl_certificate_key_path: str = Field(..., min_length=1)

    class Config:
        """Pydantic configuration for strict validation."""

        str_strip_whitespace = True
        extra = "ignore"

    @field_validator("model_function", mode="before")
    @classmethod
    def _null_means_absent(cls, value):
        if value is None:
            return None
        value = str(value).strip()
        if not value or value == NULL_SENTINEL:
            return None
        return value

    def descriptor(self) -> AppDescriptor:
        """Resolve the application descriptor (fails on a URL without a ref)."""
        return AppDescriptor.from_url(self.github_repo_url, self.inst_dir, self.model_function)


def load_config(path: Path = CONFIG_PATH, overrides: dict | None = None) -> DeployConfig:
    """
    Read config.yml and validate it.

    Args:
        path: Location of the YAML file.
        overrides: Values taking precedence over the file (CLI positionals).

    Returns:
        DeployConfig with every required key present.

    Raises:
        ConfigError: Missing file, unparsable YAML or missing keys.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file is not valid YAML: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"Config file must be a mapping of keys to values: {path}")

    data.update({k: v for k, v in (overrides or {}).items() if v is not None})

    try:
        config = DeployConfig(**data)
    except ValidationError as e:
        missing = ", ".join(str(err["loc"][0]) for err in e.errors())
        raise ConfigError(f"Invalid config {path}: {missing}")

    console.print(f"[green][CONFIG] Loaded {path}[/green]")
    return config
