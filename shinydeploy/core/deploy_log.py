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
# DEPLOY LOG - FLIGHT RECORDER
# -----------------------------------------------------------------------------
# Responsibility: Append-only record of every deployment step.
# Each entry is "<timestamp> - <message>" in deploy_log.txt and is echoed to
# the console. Raw command output is appended verbatim so a failed apt-get or
# docker build can be read back later.
# -----------------------------------------------------------------------------

from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markup import escape

console = Console()

LOG_FILE = "deploy_log.txt"


class DeployLog:
    """
    The flight recorder for one deployment run.

    Every step logs here, pass or fail, so even an aborted run leaves a trail.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, message: str, style: str = "cyan") -> None:
        """Record a step outcome with a timestamp."""
        timestamp = datetime.now().isoformat(timespec="seconds")
        with open(self.path, "a") as f:
            f.write(f"{timestamp} - {message}\n")
        console.print(f"[{style}][DEPLOY] {escape(message)}[/{style}]")

    def success(self, message: str) -> None:
        self.log(message, style="green")

    def warning(self, message: str) -> None:
        self.log(message, style="yellow")

    def error(self, message: str) -> None:
        self.log(message, style="red")

    def raw(self, text: str) -> None:
        """Append command output without a timestamp or console echo."""
        if not text:
            return
        with open(self.path, "a") as f:
            f.write(text if text.endswith("\n") else text + "\n")
