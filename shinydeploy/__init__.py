# -----------------------------------------------------------------------------
# SHINYDEPLOY
# -----------------------------------------------------------------------------
# Publishes a packaged Shiny application behind ShinyProxy and nginx, keeps it
# in step with its repository and sweeps stale containers.
# -----------------------------------------------------------------------------

__version__ = "1.0.0"
