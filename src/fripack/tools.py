"""External tool invocation."""

from __future__ import annotations

import shutil
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from fripack.errors import ToolNotFoundError

TOOL_HINTS: Mapping[str, str] = {
    "apktool": "Install apktool (https://apktool.org) or set FRIPACK_APKTOOL.",
    "apksigner": "Install the Android SDK build-tools or set FRIPACK_APKSIGNER.",
}


@dataclass(frozen=True, slots=True)
class ToolResult:
    returncode: int
    stdout: str
    stderr: str
    argv: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ToolInvoker(Protocol):
    def resolve(self, tool: str) -> str:
        """Return the executable path for *tool* or raise ``ToolNotFoundError``."""

    def run(self, tool: str, args: Sequence[str], *, cwd: Path | None = None) -> ToolResult:
        """Run *tool* to completion; a non-zero exit status is returned, not raised."""


@dataclass(slots=True)
class SubprocessInvoker:
    overrides: Mapping[str, str] = field(default_factory=dict)

    def resolve(self, tool: str) -> str:
        executable = shutil.which(self.overrides.get(tool, tool))
        if executable is None:
            raise ToolNotFoundError(tool, hint=TOOL_HINTS.get(tool))
        return executable

    def run(self, tool: str, args: Sequence[str], *, cwd: Path | None = None) -> ToolResult:
        command = [self.resolve(tool), *args]
        completed = subprocess.run(
            command,
            cwd=str(cwd) if cwd is not None else None,
            capture_output=True,
            text=True,
            errors="replace",
            check=False,
        )
        return ToolResult(
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            argv=tuple(command),
        )


def ensure_tools(invoker: ToolInvoker, tools: Sequence[str]) -> None:
    """Resolve every tool up front so none is found missing mid-build."""
    for tool in dict.fromkeys(tools):
        invoker.resolve(tool)
