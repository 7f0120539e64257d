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
# DOCKERFILE SPEC - STRUCTURED IMAGE BUILDER
# -----------------------------------------------------------------------------
# Responsibility: Hold the image build as an ordered list of typed
# instructions and render it to a Dockerfile only at the end.
#
# Instructions can carry:
# - anchor: a named insertion point (build-tools, dependencies, entrypoint)
# - role:   what the instruction is for (restore, app-install, ...), so the
#           foundry can find the restore step when it repairs a build
# -----------------------------------------------------------------------------

import json
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

# Named insertion points
BUILD_TOOLS_ANCHOR = "build-tools"
DEPENDENCIES_ANCHOR = "dependencies"
ENTRYPOINT_ANCHOR = "entrypoint"

# Roles
ROLE_RESTORE = "restore"
ROLE_APP_INSTALL = "app-install"
ROLE_SOURCE_INSTALL = "source-install"


class InstructionKind(str, Enum):
    """Instruction variants the synthesizer can emit."""

    FROM = "FROM"
    ENV = "ENV"
    SYSTEM_INSTALL = "SYSTEM_INSTALL"
    RUN = "RUN"
    R = "R"
    COPY = "COPY"
    EXPOSE = "EXPOSE"
    CMD = "CMD"


class Instruction(BaseModel):
    """A single build step."""

    kind: InstructionKind
    args: list[str] = Field(default_factory=list)
    role: str | None = None
    anchor: str | None = None
    # Anchor this instruction was inserted relative to
    placed_at: str | None = None

    def render(self) -> str:
        if self.kind == InstructionKind.FROM:
            return f"FROM {self.args[0]}"
        if self.kind == InstructionKind.ENV:
            return f"ENV {self.args[0]}={self.args[1]}"
        if self.kind == InstructionKind.SYSTEM_INSTALL:
            packages = " \\\n    ".join(self.args)
            return (
                "RUN apt-get update -qq && apt-get -y --no-install-recommends install \\\n"
                f"    {packages}"
            )
        if self.kind == InstructionKind.RUN:
            return f"RUN {self.args[0]}"
        if self.kind == InstructionKind.R:
            return f'RUN R -e "{"; ".join(self.args)}"'
        if self.kind == InstructionKind.COPY:
            return f"COPY {self.args[0]} {self.args[1]}"
        if self.kind == InstructionKind.EXPOSE:
            return f"EXPOSE {self.args[0]}"
        if self.kind == InstructionKind.CMD:
            return f"CMD {json.dumps(self.args)}"
        raise ValueError(f"Unknown instruction kind: {self.kind}")


def from_image(image: str) -> Instruction:
    return Instruction(kind=InstructionKind.FROM, args=[image])


def env(name: str, value: str) -> Instruction:
    return Instruction(kind=InstructionKind.ENV, args=[name, value])


def system_install(*packages: str, role: str | None = None, anchor: str | None = None) -> Instruction:
    return Instruction(kind=InstructionKind.SYSTEM_INSTALL, args=list(packages), role=role, anchor=anchor)


def run(command: str, role: str | None = None) -> Instruction:
    return Instruction(kind=InstructionKind.RUN, args=[command], role=role)


def r_script(*statements: str, role: str | None = None, anchor: str | None = None) -> Instruction:
    """RUN R -e "<statements joined by '; '>"."""
    return Instruction(kind=InstructionKind.R, args=list(statements), role=role, anchor=anchor)


def copy(source: str, destination: str) -> Instruction:
    return Instruction(kind=InstructionKind.COPY, args=[source, destination])


def expose(port: int, anchor: str | None = None) -> Instruction:
    return Instruction(kind=InstructionKind.EXPOSE, args=[str(port)], anchor=anchor)


def cmd(*args: str) -> Instruction:
    return Instruction(kind=InstructionKind.CMD, args=list(args))


class DockerfileSpec:
    """
    Ordered, editable image definition.

    Inserting at an anchor keeps insertion order: two instructions placed
    after the same anchor appear in the order they were inserted.
    """

    def __init__(self) -> None:
        self.instructions: list[Instruction] = []

    def __len__(self) -> int:
        return len(self.instructions)

    def __iter__(self):
        return iter(self.instructions)

    def add(self, instruction: Instruction) -> Instruction:
        self.instructions.append(instruction)
        return instruction

    def _anchor_index(self, anchor: str) -> int:
        for i, instruction in enumerate(self.instructions):
            if instruction.anchor == anchor:
                return i
        raise KeyError(f"Anchor not found: {anchor}")

    def insert_after(self, anchor: str, instruction: Instruction) -> Instruction:
        """Place instruction after the anchor and anything already placed there."""
        position = self._anchor_index(anchor) + 1
        while (
            position < len(self.instructions)
            and self.instructions[position].placed_at == f"after:{anchor}"
        ):
            position += 1
        instruction.placed_at = f"after:{anchor}"
        self.instructions.insert(position, instruction)
        return instruction

    def insert_before(self, anchor: str, instruction: Instruction) -> Instruction:
        """Place instruction immediately before the anchor."""
        instruction.placed_at = f"before:{anchor}"
        self.instructions.insert(self._anchor_index(anchor), instruction)
        return instruction

    def insert_before_role(self, role: str, instruction: Instruction) -> Instruction:
        """Place instruction immediately before the first instruction with role."""
        matches = self.with_role(role)
        if not matches:
            raise KeyError(f"No instruction with role: {role}")
        self.instructions.insert(self.index_of(matches[0]), instruction)
        return instruction

    def with_role(self, role: str) -> list[Instruction]:
        return [i for i in self.instructions if i.role == role]

    def index_of(self, instruction: Instruction) -> int:
        for i, existing in enumerate(self.instructions):
            if existing is instruction:
                return i
        raise ValueError("Instruction not in spec")

    def render(self) -> str:
        return "\n\n".join(i.render() for i in self.instructions) + "\n"

    def write(self, path: Path) -> Path:
        path = Path(path)
        path.write_text(self.render())
        return path
