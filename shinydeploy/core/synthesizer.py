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
# THE SYNTHESIZER - IMAGE DEFINITION
# -----------------------------------------------------------------------------
# Responsibility: Turn an AppDescriptor + DependencyManifest into the
# DockerfileSpec for a rocker/shiny-verse image serving the app on 3838.
#
# Layout of the generated image:
#   FROM rocker/shiny-verse:<R version | latest>
#   system libraries, upgrade, git/cmake/build-essential   <- build-tools
#   COPY app (+ renv.lock), renv environment
#   helper packages                                        <- dependencies
#   renv::restore() / application install
#   EXPOSE 3838                                            <- entrypoint
#   CMD shiny::runApp(...)
# -----------------------------------------------------------------------------

from rich.console import Console

from shinydeploy.core.dockerfile import (
    BUILD_TOOLS_ANCHOR,
    DEPENDENCIES_ANCHOR,
    ENTRYPOINT_ANCHOR,
    ROLE_APP_INSTALL,
    ROLE_RESTORE,
    ROLE_SOURCE_INSTALL,
    DockerfileSpec,
    cmd,
    copy,
    env,
    expose,
    from_image,
    r_script,
    run,
    system_install,
)
from shinydeploy.domain.models import AppDescriptor, DependencyManifest, LockEntry

console = Console()

BASE_IMAGE = "rocker/shiny-verse"
APP_PORT = 3838

SYSTEM_LIBRARIES = [
    "libxml2-dev",
    "libcairo2-dev",
    "libsqlite3-dev",
    "libpq-dev",
    "libssh2-1-dev",
    "unixodbc-dev",
    "libcurl4-openssl-dev",
    "libssl-dev",
    "libglpk-dev",
    "libmagick++-dev",
    "libgsl-dev",
]
BUILD_TOOLS = ["git", "cmake", "build-essential"]

HELPER_PACKAGES = [
    "markdown",
    "DT",
    "shinyWidgets",
    "shinythemes",
    "shinycssloaders",
    "colourpicker",
    "shinyhelper",
    "shinyalert",
    "shinyEffects",
]

RENV_ENVIRONMENT = {
    "RENV_DOWNLOAD_METHOD": "libcurl",
    "RENV_CONFIG_REPOS_OVERRIDE": "http://cran.rstudio.com",
}

SEQR_SOURCE = "slowikj/seqR"


def r_vector(names: list[str]) -> str:
    """['a', 'b'] -> c('a', 'b')"""
    return "c(" + ", ".join(f"'{n}'" for n in names) + ")"


def install_github(owner: str, repo: str, ref: str | None = None, dependencies: bool = False) -> str:
    args = [f"'{owner}/{repo}'"]
    if ref:
        args.append(f"ref = '{ref}'")
    if dependencies:
        args.append("dependencies = TRUE")
    return f"devtools::install_github({', '.join(args)})"


def run_app_command(repo_name: str) -> list[str]:
    """Entry point shared by the image CMD and the ShinyProxy spec."""
    return ["R", "-e", f"shiny::runApp('/{repo_name}', host = '0.0.0.0', port = {APP_PORT})"]


def _emit_base(spec: DockerfileSpec, app: AppDescriptor, manifest: DependencyManifest) -> None:
    tag = manifest.r_version if manifest.locked and manifest.r_version else "latest"
    spec.add(from_image(f"{BASE_IMAGE}:{tag}"))
    spec.add(system_install(*SYSTEM_LIBRARIES))
    spec.add(run("apt-get update && apt-get upgrade -y && apt-get clean"))
    spec.add(system_install(*BUILD_TOOLS, anchor=BUILD_TOOLS_ANCHOR))

    spec.add(copy(f"/{app.repo_name}/inst/{app.install_subdirectory}", f"./{app.repo_name}"))
    if manifest.locked:
        spec.add(copy(f"/{app.repo_name}/renv.lock", "./"))

    for name, value in RENV_ENVIRONMENT.items():
        spec.add(env(name, value))


def _emit_locked(spec: DockerfileSpec, app: AppDescriptor) -> None:
    spec.add(
        r_script(
            "install.packages('renv')",
            f"install.packages({r_vector(HELPER_PACKAGES)})",
            "install.packages('devtools')",
            anchor=DEPENDENCIES_ANCHOR,
        )
    )
    spec.add(r_script("options(renv.consent = TRUE)", "renv::restore()", role=ROLE_RESTORE))
    # renv::restore() does not always capture the app's own package
    spec.add(
        r_script(
            install_github(app.author, app.repo_name, app.ref_name, dependencies=True),
            role=ROLE_APP_INSTALL,
        )
    )


def _emit_unlocked(spec: DockerfileSpec, app: AppDescriptor, manifest: DependencyManifest) -> None:
    spec.add(r_script(f"install.packages({r_vector(HELPER_PACKAGES)})", anchor=DEPENDENCIES_ANCHOR))

    if manifest.app_on_registry:
        app_install = r_script(f"install.packages('{app.repo_name}', dependencies = TRUE)", role=ROLE_APP_INSTALL)
    else:
        app_install = r_script(
            "install.packages('devtools')",
            install_github(app.author, app.repo_name, app.ref_name),
            role=ROLE_APP_INSTALL,
        )
    spec.add(app_install)

    if manifest.non_registry:
        spec.insert_before(
            DEPENDENCIES_ANCHOR,
            r_script(
                "if (!require('BiocManager')) install.packages('BiocManager')",
                f"BiocManager::install({r_vector(manifest.non_registry)}, update = TRUE)",
                role="non-registry",
            ),
        )

    if manifest.suggests:
        console.print(f"[cyan][SYNTH] Suggested packages: {', '.join(manifest.suggests)}[/cyan]")
        spec.insert_before(
            DEPENDENCIES_ANCHOR,
            r_script(f"install.packages({r_vector(manifest.suggests)}, dependencies = TRUE)", role="suggests"),
        )


def _apply_flags(spec: DockerfileSpec, manifest: DependencyManifest) -> None:
    # Fixed order so the result does not depend on detection order
    if manifest.needs_java:
        console.print("[cyan][SYNTH] Adding rJava setup (JDK + javareconf)[/cyan]")
        spec.insert_after(BUILD_TOOLS_ANCHOR, system_install("default-jre", "default-jdk", role="java"))
        spec.insert_after(BUILD_TOOLS_ANCHOR, run("R CMD javareconf", role="java"))

    if manifest.needs_hmmer:
        console.print("[cyan][SYNTH] Adding hmmer system package[/cyan]")
        spec.insert_after(BUILD_TOOLS_ANCHOR, system_install("hmmer", role="hmmer"))

    if manifest.needs_seqr:
        console.print("[cyan][SYNTH] Adding seqR install from GitHub[/cyan]")
        spec.insert_before(
            DEPENDENCIES_ANCHOR,
            r_script(
                "if (!require('devtools')) install.packages('devtools')",
                install_github(*SEQR_SOURCE.split("/")),
                role="seqr",
            ),
        )


def synthesize(app: AppDescriptor, manifest: DependencyManifest) -> DockerfileSpec:
    """
    Build the image definition for app.

    Args:
        app: Resolved application descriptor.
        manifest: Result of ManifestInspector.inspect().

    Returns:
        DockerfileSpec ready to be rendered and built.
    """
    spec = DockerfileSpec()
    _emit_base(spec, app, manifest)

    if manifest.locked:
        _emit_locked(spec, app)
    else:
        _emit_unlocked(spec, app, manifest)

    spec.add(expose(APP_PORT, anchor=ENTRYPOINT_ANCHOR))
    spec.add(cmd(*run_app_command(app.repo_name)))

    _apply_flags(spec, manifest)

    if app.model_install_function:
        spec.insert_before(
            ENTRYPOINT_ANCHOR,
            r_script(f"library({app.repo_name})", f"{app.model_install_function}()", role="post-install"),
        )
        console.print("[cyan][SYNTH] Added model installation step[/cyan]")

    return spec


def add_source_install(spec: DockerfileSpec, entry: LockEntry) -> None:
    """Install entry from its remote repository right before renv::restore()."""
    spec.insert_before_role(
        ROLE_RESTORE,
        r_script(
            install_github(entry.remote_username, entry.remote_repo, entry.remote_ref),
            role=ROLE_SOURCE_INSTALL,
        ),
    )
