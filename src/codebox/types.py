"""Data models for codebox."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

DEFAULT_CONTAINER_PATH = "/workspace"

WriteMode = Literal["overwrite", "append"]


@dataclass(frozen=True)
class ExistingContainer:
    """A container started out-of-band; its bind mount is already fixed."""

    name: str
    path: str = DEFAULT_CONTAINER_PATH


@dataclass(frozen=True)
class ImageTarget:
    """An image instantiated per command with the session's directory mounted."""

    ref: str
    path: str = DEFAULT_CONTAINER_PATH
    network: str | None = None


ExecutionTarget = ExistingContainer | ImageTarget


@dataclass(frozen=True)
class Project:
    """A registered project resolved from its config section.

    ``target`` is None when neither an image nor a container was configured;
    execution then fails with NoExecutionTargetError.
    """

    name: str
    host_path: Path
    target: ExecutionTarget | None
    copy: bool = False


@dataclass(frozen=True)
class Session:
    session_id: str
    project_name: str
    working_dir: Path
    is_temp_dir: bool


@dataclass(frozen=True)
class ExecResult:
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        """stdout, then stderr under a ``STDERR:`` header when non-empty."""
        return self.stdout + (f"\nSTDERR:\n{self.stderr}" if self.stderr else "")


@dataclass(frozen=True)
class FileWrite:
    file_path: str
    content: str
    mode: WriteMode = "overwrite"


@dataclass(frozen=True)
class BatchItemResult:
    target: str  # command or relative file path
    success: bool
    output: str  # captured output, or the error message on failure
