"""Command execution in Docker: target resolution and CLI invocation.

Two execution targets:

  Existing container: ``docker exec`` into a container started out-of-band.
    Its bind mount was fixed when it was started, so the session's working
    directory (and copy isolation) does not apply.
  Image: ``docker run --rm`` a disposable container with the session's
    working directory bind-mounted at the container path.

The host side always passes an argument vector to the Docker CLI; the
command string itself is handed to ``sh -c`` inside the container so pipes,
redirection and ``&&`` behave as usual.  Captured output is bounded by
``[container] max_output_size``.  Nothing here retries.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import subprocess
import time
from pathlib import Path

from codebox.config import ContainerConfig, SessionsConfig, get_settings
from codebox.errors import (
    ContainerNotRunningError,
    ExecutionError,
    NoExecutionTargetError,
    OutputLimitExceededError,
    ProjectNotFoundError,
    WorkspaceCopyError,
)
from codebox.logger import logger
from codebox.registry import ProjectRegistry
from codebox.types import ExecResult, ExecutionTarget, ExistingContainer, ImageTarget, Project
from codebox.workdir import create_isolated_copy, remove_directory_async, temp_prefix_for

_CHUNK_SIZE = 8192


# ---------------------------------------------------------------------------
# Low-level CLI wrapper
# ---------------------------------------------------------------------------


class _OutputBudget:
    """Combined stdout+stderr byte allowance shared by both stream readers."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.used = 0
        self.exceeded = False


async def _drain(
    stream: asyncio.StreamReader,
    sink: bytearray,
    budget: _OutputBudget,
    proc: asyncio.subprocess.Process,
) -> None:
    while True:
        chunk = await stream.read(_CHUNK_SIZE)
        if not chunk:
            return
        budget.used += len(chunk)
        if budget.used > budget.limit:
            budget.exceeded = True
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            return
        sink.extend(chunk)


async def run_docker(
    *args: str,
    config: ContainerConfig | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run a Docker CLI command and capture its output.

    Never raises for a non-zero exit; inspect ``returncode``.

    Raises:
        OutputLimitExceededError: stdout+stderr grew past ``max_output_size``.
            The process is killed.
        OSError: the CLI could not be spawned.
    """
    cfg = config or get_settings().container
    argv = [cfg.cli, *args]
    start = time.monotonic()

    proc = await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    assert proc.stdout is not None
    assert proc.stderr is not None

    out = bytearray()
    err = bytearray()
    budget = _OutputBudget(cfg.max_output_size)
    await asyncio.gather(
        _drain(proc.stdout, out, budget, proc),
        _drain(proc.stderr, err, budget, proc),
    )
    returncode = await proc.wait()

    stdout = out.decode(errors="replace")
    stderr = err.decode(errors="replace")
    elapsed_ms = (time.monotonic() - start) * 1000
    logger.debug(
        "Docker command finished",
        subcommand=args[0] if args else None,
        returncode=returncode,
        elapsed_ms=round(elapsed_ms),
    )

    if budget.exceeded:
        logger.warning(
            "Docker output limit exceeded",
            subcommand=args[0] if args else None,
            limit=cfg.max_output_size,
        )
        raise OutputLimitExceededError(cfg.max_output_size, stdout, stderr)

    return subprocess.CompletedProcess(argv, returncode, stdout, stderr)


async def is_container_running(name: str, config: ContainerConfig | None = None) -> bool:
    """Check whether a container with exactly this name is running."""
    try:
        result = await run_docker("ps", "-q", "-f", f"name=^{name}$", config=config)
    except (OSError, ExecutionError) as exc:
        logger.debug("Container check failed", container=name, error=str(exc))
        return False
    return result.returncode == 0 and bool(result.stdout.strip())


async def network_exists(name: str, config: ContainerConfig | None = None) -> bool:
    """Check whether a Docker network with this name exists."""
    try:
        result = await run_docker(
            "network", "inspect", name, "--format", "{{.Name}}", config=config
        )
    except (OSError, ExecutionError) as exc:
        logger.debug("Network check failed", network=name, error=str(exc))
        return False
    return result.returncode == 0 and bool(result.stdout.strip())


# ---------------------------------------------------------------------------
# Argument construction
# ---------------------------------------------------------------------------


def _user_spec() -> str:
    """uid:gid of the invoking user, so files created in mounts stay theirs."""
    return f"{os.getuid()}:{os.getgid()}"


def build_exec_args(target: ExistingContainer, command: str, shell: str = "/bin/sh") -> list[str]:
    """CLI args for running *command* inside an already-running container."""
    return [
        "exec",
        "-i",
        f"--user={_user_spec()}",
        f"--workdir={target.path}",
        target.name,
        shell,
        "-c",
        command,
    ]


def build_run_args(
    target: ImageTarget,
    working_dir: str | Path,
    command: str,
    shell: str = "/bin/sh",
) -> list[str]:
    """CLI args for running *command* in a disposable container from an image."""
    args = ["run", "-i", "--rm"]
    if target.network:
        args.append(f"--network={target.network}")
    args.extend(
        [
            "-v",
            f"{working_dir}:{target.path}",
            f"--workdir={target.path}",
            f"--user={_user_spec()}",
            target.ref,
            shell,
            "-c",
            command,
        ]
    )
    return args


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


def resolve_target(project: Project) -> ExecutionTarget:
    """Return the project's execution target or raise NoExecutionTargetError."""
    if project.target is None:
        raise NoExecutionTargetError(project.name)
    return project.target


async def run_in_target(
    target: ExecutionTarget,
    command: str,
    working_dir: str | Path,
    config: ContainerConfig | None = None,
) -> ExecResult:
    """Execute *command* against a resolved target.

    Raises:
        ContainerNotRunningError: existing-container target is not running.
        ExecutionError: non-zero exit, output overflow, or CLI spawn failure.
    """
    cfg = config or get_settings().container

    match target:
        case ExistingContainer():
            if not await is_container_running(target.name, config=cfg):
                raise ContainerNotRunningError(target.name)
            logger.debug(
                "Executing in existing container",
                container=target.name,
                ignored_working_dir=str(working_dir),
            )
            args = build_exec_args(target, command, cfg.shell)
        case ImageTarget():
            logger.debug(
                "Executing in ephemeral container",
                image=target.ref,
                working_dir=str(working_dir),
                network=target.network,
            )
            args = build_run_args(target, working_dir, command, cfg.shell)
        case _:
            raise TypeError(f"Unknown execution target: {target!r}")

    try:
        result = await run_docker(*args, config=cfg)
    except OSError as exc:
        raise ExecutionError(f"Failed to invoke {cfg.cli}: {exc}") from exc

    if result.returncode != 0:
        raise ExecutionError(
            f"Command failed with exit code {result.returncode}",
            result.stdout,
            result.stderr,
        )
    return ExecResult(stdout=result.stdout, stderr=result.stderr)


async def execute_command(
    registry: ProjectRegistry,
    project_name: str,
    command: str,
    working_dir: str | Path | None = None,
    config: ContainerConfig | None = None,
    sessions: SessionsConfig | None = None,
) -> ExecResult:
    """Look up *project_name* and run *command* in its execution target.

    *working_dir* is the session's resolved directory; None means the
    project's own host path.  Without a session, a copy-mode image project
    runs against a throwaway copy of its host path that is removed once the
    command finishes, so the host files are never mounted.

    Raises:
        ProjectNotFoundError: the registry has no such project.
        WorkspaceCopyError: the throwaway copy could not be created.
    """
    project = registry.lookup(project_name)
    if project is None:
        raise ProjectNotFoundError(project_name)

    target = resolve_target(project)
    if working_dir is not None:
        return await run_in_target(target, command, working_dir, config=config)
    if not (project.copy and isinstance(target, ImageTarget)):
        return await run_in_target(target, command, project.host_path, config=config)

    scfg = sessions or get_settings().sessions
    try:
        temp_dir = await create_isolated_copy(
            project.host_path,
            temp_prefix_for(scfg.temp_prefix, project_name),
            scfg.temp_root,
        )
    except OSError as exc:
        raise WorkspaceCopyError(
            f"Failed to copy project {project_name} into a temporary directory: {exc}"
        ) from exc

    try:
        return await run_in_target(target, command, temp_dir, config=config)
    finally:
        try:
            await remove_directory_async(temp_dir)
        except OSError as exc:
            logger.error(
                "Error cleaning up temporary directory",
                project=project_name,
                path=str(temp_dir),
                error=str(exc),
            )
