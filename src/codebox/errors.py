"""Exception taxonomy shared by the session, execution and batch layers.

Validation errors are raised before any side effect. Execution and I/O
errors carry enough context to be reported verbatim to the caller.
"""

from __future__ import annotations


class CodeboxError(Exception):
    """Base for every error this package raises on purpose."""


# ---------------------------------------------------------------------------
# Validation: bad project name, session id or path
# ---------------------------------------------------------------------------


class ValidationError(CodeboxError):
    """Input rejected before anything touched the filesystem or Docker."""


class ProjectNotFoundError(ValidationError):
    def __init__(self, project_name: str) -> None:
        super().__init__(f"Project not registered: {project_name}")
        self.project_name = project_name


class SessionNotFoundError(ValidationError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Invalid or expired project session id: {session_id}")
        self.session_id = session_id


class UnsafePathError(ValidationError):
    def __init__(self, file_path: str) -> None:
        super().__init__(f"Invalid file path: {file_path} - path traversal attempt detected")
        self.file_path = file_path


# ---------------------------------------------------------------------------
# Execution target
# ---------------------------------------------------------------------------


class NotRunningError(CodeboxError):
    """The execution target exists in config but is not available."""


class ContainerNotRunningError(NotRunningError):
    def __init__(self, container_name: str) -> None:
        super().__init__(f"Container '{container_name}' not found or not running")
        self.container_name = container_name


class NoExecutionTargetError(CodeboxError):
    def __init__(self, project_name: str) -> None:
        super().__init__(
            f"No Docker image or container configured for project: {project_name}"
        )
        self.project_name = project_name


class ExecutionError(CodeboxError):
    """Docker invocation failed or the command exited non-zero.

    ``str()`` renders the message followed by whatever output was captured,
    so callers can surface it without further formatting.
    """

    def __init__(self, message: str, stdout: str = "", stderr: str = "") -> None:
        self.message = message
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(self._render())

    def _render(self) -> str:
        combined = self.stdout
        if self.stderr:
            combined += f"\nSTDERR:\n{self.stderr}"
        head = f"{self.message}\n" if self.message else ""
        return f"Docker execution failed:\n{head}{combined}"


class OutputLimitExceededError(ExecutionError):
    def __init__(self, limit: int, stdout: str = "", stderr: str = "") -> None:
        super().__init__(f"Output exceeded the {limit} byte limit", stdout, stderr)
        self.limit = limit


# ---------------------------------------------------------------------------
# Filesystem
# ---------------------------------------------------------------------------


class WorkspaceIOError(CodeboxError, OSError):
    """Filesystem failure while copying, writing or removing project files."""


class WorkspaceCopyError(WorkspaceIOError):
    """Populating an isolated session copy failed; no session was created."""


class FileWriteError(WorkspaceIOError):
    """Writing a file inside a working directory failed."""
