"""Process and filesystem capabilities consumed by the engine.

The engine never spawns processes or touches the disk directly: it goes through
a ``ProcessRunner`` and a ``FileSystem``. The local implementations below are
what the CLI wires in; tests substitute scripted fakes.
"""

from __future__ import annotations

import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

LineCallback = Callable[[str], None]


@dataclass(frozen=True)
class CommandOutput:
    """Captured result of one external command."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ProcessRunner(Protocol):
    def run(
        self,
        program: str,
        args: Sequence[str],
        cwd: Path,
        on_stdout: LineCallback | None = None,
        on_stderr: LineCallback | None = None,
    ) -> int:
        """Run ``program`` with ``args`` in ``cwd``, stream output lines, return the exit code."""
        ...


class FileSystem(Protocol):
    def is_dir(self, path: Path) -> bool: ...

    def is_file(self, path: Path) -> bool: ...

    def read_text(self, path: Path) -> str: ...

    def list_dirs(self, path: Path) -> list[Path]: ...


class SubprocessRunner:
    """Run external commands with ``subprocess`` (no shell, output captured)."""

    def run(
        self,
        program: str,
        args: Sequence[str],
        cwd: Path,
        on_stdout: LineCallback | None = None,
        on_stderr: LineCallback | None = None,
    ) -> int:
        result = subprocess.run(
            [program, *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
        if on_stdout is not None:
            for line in result.stdout.splitlines():
                on_stdout(line)
        if on_stderr is not None:
            for line in result.stderr.splitlines():
                on_stderr(line)
        return result.returncode


class LocalFileSystem:
    """``FileSystem`` backed by ``pathlib``."""

    def is_dir(self, path: Path) -> bool:
        return path.is_dir()

    def is_file(self, path: Path) -> bool:
        return path.is_file()

    def read_text(self, path: Path) -> str:
        return path.read_text(encoding="utf-8", errors="replace")

    def list_dirs(self, path: Path) -> list[Path]:
        # Sorted by name: traversal order is stable across scans of an unchanged tree
        return sorted((p for p in path.iterdir() if p.is_dir()), key=lambda p: p.name)
