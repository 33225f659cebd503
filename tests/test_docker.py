"""Tests for Docker argument construction, target routing and output capture."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from codebox.config import ContainerConfig, SessionsConfig
from codebox.docker import (
    build_exec_args,
    build_run_args,
    execute_command,
    is_container_running,
    network_exists,
    resolve_target,
    run_docker,
    run_in_target,
)
from codebox.errors import (
    ContainerNotRunningError,
    ExecutionError,
    NoExecutionTargetError,
    OutputLimitExceededError,
    ProjectNotFoundError,
    WorkspaceCopyError,
)
from codebox.registry import StaticProjectRegistry
from codebox.types import ExistingContainer, ImageTarget, Project
from conftest import FakeDocker, completed, container_project

USER = f"{os.getuid()}:{os.getgid()}"


class _FakeProcess:
    """Minimal asyncio.subprocess.Process backed by in-memory StreamReaders."""

    def __init__(self, stdout: bytes = b"", stderr: bytes = b"", returncode: int = 0):
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        for reader, data in ((self.stdout, stdout), (self.stderr, stderr)):
            if data:
                reader.feed_data(data)
            reader.feed_eof()
        self.returncode = returncode
        self.killed = False

    def kill(self) -> None:
        self.killed = True
        self.returncode = -9

    async def wait(self) -> int:
        return self.returncode


# ---------------------------------------------------------------------------
# Argument construction
# ---------------------------------------------------------------------------


class TestBuildArgs:
    def test_exec_args(self):
        args = build_exec_args(ExistingContainer("dev-box", "/code"), "ls -la")
        assert args == [
            "exec",
            "-i",
            f"--user={USER}",
            "--workdir=/code",
            "dev-box",
            "/bin/sh",
            "-c",
            "ls -la",
        ]

    def test_run_args_mount_the_working_dir(self):
        args = build_run_args(ImageTarget("node:20"), "/tmp/s1", "npm test")
        assert args == [
            "run",
            "-i",
            "--rm",
            "-v",
            "/tmp/s1:/workspace",
            "--workdir=/workspace",
            f"--user={USER}",
            "node:20",
            "/bin/sh",
            "-c",
            "npm test",
        ]

    def test_run_args_with_network(self):
        args = build_run_args(ImageTarget("node:20", "/app", "backend"), "/tmp/s1", "true")
        assert args[3] == "--network=backend"
        assert "/tmp/s1:/app" in args

    def test_command_is_a_single_argument(self):
        command = "echo 'a b' && cat x | wc -l; echo $HOME"
        args = build_run_args(ImageTarget("alpine"), "/tmp/s1", command)
        assert args[-3:] == ["/bin/sh", "-c", command]

    def test_custom_shell(self):
        args = build_exec_args(ExistingContainer("c"), "true", shell="/bin/bash")
        assert args[-3] == "/bin/bash"


class TestResolveTarget:
    def test_returns_target(self, tmp_path: Path):
        target = ImageTarget("alpine")
        assert resolve_target(Project("p", tmp_path, target)) is target

    def test_missing_target_raises(self, tmp_path: Path):
        with pytest.raises(NoExecutionTargetError, match="No Docker image or container"):
            resolve_target(Project("p", tmp_path, None))


# ---------------------------------------------------------------------------
# run_docker
# ---------------------------------------------------------------------------


class TestRunDocker:
    async def test_captures_output(self):
        proc = _FakeProcess(b"hello\n", b"warn\n", 3)
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)) as spawn:
            result = await run_docker("ps", config=ContainerConfig())

        assert result.returncode == 3
        assert result.stdout == "hello\n"
        assert result.stderr == "warn\n"
        assert spawn.call_args.args == ("docker", "ps")

    async def test_uses_configured_cli(self):
        proc = _FakeProcess()
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)) as spawn:
            await run_docker("ps", config=ContainerConfig(cli="podman"))
        assert spawn.call_args.args[0] == "podman"

    async def test_output_limit_kills_process(self):
        proc = _FakeProcess(b"x" * 12, b"y" * 12)
        config = ContainerConfig(max_output_size=16)
        with (
            patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)),
            pytest.raises(OutputLimitExceededError) as exc_info,
        ):
            await run_docker("run", config=config)

        assert proc.killed
        assert exc_info.value.limit == 16
        assert isinstance(exc_info.value, ExecutionError)

    async def test_output_at_limit_is_accepted(self):
        proc = _FakeProcess(b"x" * 16)
        config = ContainerConfig(max_output_size=16)
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            result = await run_docker("run", config=config)
        assert result.stdout == "x" * 16
        assert not proc.killed

    async def test_spawn_failure_propagates_oserror(self):
        spawn = AsyncMock(side_effect=FileNotFoundError("docker"))
        with patch("asyncio.create_subprocess_exec", spawn), pytest.raises(OSError):
            await run_docker("ps", config=ContainerConfig())


class TestRuntimeChecks:
    async def test_container_running(self):
        fake = FakeDocker(running=("dev-box",))
        with patch("codebox.docker.run_docker", fake):
            assert await is_container_running("dev-box") is True
            assert await is_container_running("dev") is False

    async def test_container_check_swallows_spawn_errors(self):
        with patch("codebox.docker.run_docker", AsyncMock(side_effect=OSError("no docker"))):
            assert await is_container_running("dev-box") is False

    async def test_network_exists(self):
        with patch("codebox.docker.run_docker", FakeDocker()):
            assert await network_exists("backend") is True

    async def test_network_missing(self):
        missing = AsyncMock(return_value=completed(1, stderr="No such network"))
        with patch("codebox.docker.run_docker", missing):
            assert await network_exists("backend") is False


# ---------------------------------------------------------------------------
# run_in_target / execute_command
# ---------------------------------------------------------------------------


class TestRunInTarget:
    async def test_image_target_mounts_working_dir(self, tmp_path: Path):
        fake = FakeDocker()
        with patch("codebox.docker.run_docker", fake):
            result = await run_in_target(ImageTarget("alpine"), "ls", tmp_path)

        assert result.stdout == "ran ls\n"
        assert result.stderr == ""
        (call,) = fake.calls
        assert call[0] == "run"
        assert f"{tmp_path}:/workspace" in call

    async def test_container_target_ignores_working_dir(self, tmp_path: Path):
        fake = FakeDocker(running=("dev-box",))
        with patch("codebox.docker.run_docker", fake):
            await run_in_target(ExistingContainer("dev-box"), "ls", tmp_path)

        exec_call = fake.calls[-1]
        assert exec_call[0] == "exec"
        assert str(tmp_path) not in " ".join(exec_call)

    async def test_container_not_running(self, tmp_path: Path):
        fake = FakeDocker()
        with (
            patch("codebox.docker.run_docker", fake),
            pytest.raises(ContainerNotRunningError, match="'dev-box' not found or not running"),
        ):
            await run_in_target(ExistingContainer("dev-box"), "ls", tmp_path)
        assert fake.commands == []

    async def test_nonzero_exit_raises_with_output(self, tmp_path: Path):
        fake = FakeDocker(handler=lambda sub, mount, cmd: completed(2, "partial\n", "boom\n"))
        with (
            patch("codebox.docker.run_docker", fake),
            pytest.raises(ExecutionError) as exc_info,
        ):
            await run_in_target(ImageTarget("alpine"), "false", tmp_path)

        err = exc_info.value
        assert "exit code 2" in str(err)
        assert err.stdout == "partial\n"
        assert err.stderr == "boom\n"
        assert str(err).startswith("Docker execution failed:\n")
        assert "STDERR:\nboom" in str(err)

    async def test_stderr_on_success_is_kept(self, tmp_path: Path):
        fake = FakeDocker(handler=lambda sub, mount, cmd: completed(0, "out\n", "note\n"))
        with patch("codebox.docker.run_docker", fake):
            result = await run_in_target(ImageTarget("alpine"), "x", tmp_path)
        assert result.output == "out\n\nSTDERR:\nnote\n"

    async def test_spawn_failure_becomes_execution_error(self, tmp_path: Path):
        with (
            patch("codebox.docker.run_docker", AsyncMock(side_effect=FileNotFoundError("docker"))),
            pytest.raises(ExecutionError, match="Failed to invoke docker"),
        ):
            await run_in_target(ImageTarget("alpine"), "ls", tmp_path)


class TestExecuteCommand:
    async def test_defaults_to_host_path(self, registry, project_dir: Path):
        fake = FakeDocker()
        with patch("codebox.docker.run_docker", fake):
            await execute_command(registry, "plain", "ls")
        assert f"{project_dir}:/workspace" in fake.calls[0]

    async def test_explicit_working_dir(self, registry, tmp_path: Path):
        fake = FakeDocker()
        other = tmp_path / "elsewhere"
        with patch("codebox.docker.run_docker", fake):
            await execute_command(registry, "plain", "ls", working_dir=other)
        assert f"{other}:/workspace" in fake.calls[0]

    async def test_unknown_project(self, registry):
        with pytest.raises(ProjectNotFoundError):
            await execute_command(registry, "ghost", "ls")

    async def test_project_without_target(self, registry):
        fake = FakeDocker()
        with (
            patch("codebox.docker.run_docker", fake),
            pytest.raises(NoExecutionTargetError),
        ):
            await execute_command(registry, "targetless", "ls")
        assert fake.calls == []


class TestExecuteCommandCopyMode:
    """Project-level runs of copy-mode image projects never mount the host path."""

    @pytest.fixture
    def sessions(self, temp_root: Path) -> SessionsConfig:
        return SessionsConfig(temp_root=str(temp_root))

    async def test_runs_against_throwaway_copy(
        self, registry, project_dir: Path, temp_root: Path, sessions: SessionsConfig
    ):
        seen: list[tuple[Path, str]] = []

        def handler(sub, mount, cmd):
            seen.append((mount, (mount / "file.txt").read_text()))
            (mount / "file.txt").write_text("B")
            return completed(stdout="done\n")

        with patch("codebox.docker.run_docker", FakeDocker(handler=handler)):
            result = await execute_command(registry, "isolated", "write", sessions=sessions)

        assert result.stdout == "done\n"
        ((mount, content),) = seen
        assert mount != project_dir
        assert mount.parent == temp_root
        assert content == "A"
        assert not mount.exists()
        assert (project_dir / "file.txt").read_text() == "A"

    async def test_copy_removed_when_command_fails(
        self, registry, temp_root: Path, sessions: SessionsConfig
    ):
        fake = FakeDocker(handler=lambda sub, mount, cmd: completed(1, "", "nope\n"))
        with (
            patch("codebox.docker.run_docker", fake),
            pytest.raises(ExecutionError),
        ):
            await execute_command(registry, "isolated", "false", sessions=sessions)
        assert list(temp_root.iterdir()) == []

    async def test_copy_failure(self, registry, temp_root: Path, sessions: SessionsConfig):
        fake = FakeDocker()
        with (
            patch("codebox.docker.run_docker", fake),
            patch("codebox.workdir.copy_directory", side_effect=OSError("no space")),
            pytest.raises(WorkspaceCopyError, match="no space"),
        ):
            await execute_command(registry, "isolated", "ls", sessions=sessions)
        assert fake.calls == []
        assert list(temp_root.iterdir()) == []

    async def test_removal_failure_is_logged(
        self, registry, project_dir: Path, sessions: SessionsConfig
    ):
        with (
            patch("codebox.docker.run_docker", FakeDocker()),
            patch("codebox.workdir.remove_directory", side_effect=OSError("busy")),
            patch("codebox.docker.logger") as mock_logger,
        ):
            result = await execute_command(registry, "isolated", "ls", sessions=sessions)
        assert result.stdout == "ran ls\n"
        mock_logger.error.assert_called_once()

    async def test_session_working_dir_is_used_as_is(
        self, registry, tmp_path: Path, temp_root: Path, sessions: SessionsConfig
    ):
        fake = FakeDocker()
        session_dir = tmp_path / "session-copy"
        with patch("codebox.docker.run_docker", fake):
            await execute_command(
                registry, "isolated", "ls", working_dir=session_dir, sessions=sessions
            )
        assert f"{session_dir}:/workspace" in fake.calls[0]
        assert list(temp_root.iterdir()) == []

    async def test_container_project_is_not_copied(self, project_dir: Path, temp_root: Path):
        registry = StaticProjectRegistry([container_project("boxed", project_dir, copy=True)])
        fake = FakeDocker(running=("dev-box",))
        with patch("codebox.docker.run_docker", fake):
            await execute_command(
                registry, "boxed", "ls", sessions=SessionsConfig(temp_root=str(temp_root))
            )
        assert fake.calls[-1][0] == "exec"
        assert list(temp_root.iterdir()) == []
