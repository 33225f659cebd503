"""Shared test fixtures for codebox."""

from __future__ import annotations

import subprocess
from collections.abc import Callable
from pathlib import Path

import pytest

from codebox.registry import StaticProjectRegistry
from codebox.sessions import SessionStore
from codebox.types import ExistingContainer, ImageTarget, Project

# ---------------------------------------------------------------------------
# Shared helpers (plain functions, importable by test files)
# ---------------------------------------------------------------------------


def make_settings(**overrides):
    """Create a Settings object with defaults and no file I/O.

    Usage::

        s = make_settings(container=ContainerConfig(max_output_size=16))
        s = make_settings(projects={"app": ProjectConfig(host_path="/srv/app")})
    """
    from codebox.config import ContainerConfig, LoggingConfig, SessionsConfig, Settings

    defaults = {
        "container": ContainerConfig(),
        "sessions": SessionsConfig(),
        "logging": LoggingConfig(),
        "projects": {},
    }
    defaults.update(overrides)
    return Settings.model_construct(**defaults)


def completed(
    returncode: int = 0, stdout: str = "", stderr: str = ""
) -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(["docker"], returncode, stdout, stderr)


def image_project(name: str, host_path: Path, *, copy: bool = False, network: str | None = None):
    return Project(
        name=name,
        host_path=host_path,
        target=ImageTarget("alpine:3", network=network),
        copy=copy,
    )


def container_project(name: str, host_path: Path, *, copy: bool = False, container="dev-box"):
    return Project(
        name=name,
        host_path=host_path,
        target=ExistingContainer(container),
        copy=copy,
    )


class FakeDocker:
    """Stands in for ``codebox.docker.run_docker``.

    ``running`` lists container names reported by ``docker ps``.  ``handler``
    receives the ``(subcommand, mount_dir, command)`` of each run/exec call
    and returns a CompletedProcess; mount_dir is None for exec.
    """

    def __init__(
        self,
        running: tuple[str, ...] = (),
        handler: Callable[[str, Path | None, str], subprocess.CompletedProcess[str]]
        | None = None,
    ) -> None:
        self.running = set(running)
        self.handler = handler or (lambda sub, mount, cmd: completed(stdout=f"ran {cmd}\n"))
        self.calls: list[tuple[str, ...]] = []

    async def __call__(self, *args: str, config=None) -> subprocess.CompletedProcess[str]:
        self.calls.append(args)
        match args[0]:
            case "ps":
                wanted = args[-1].removeprefix("name=^").removesuffix("$")
                return completed(stdout="abc123\n" if wanted in self.running else "")
            case "network":
                return completed(stdout=f"{args[2]}\n")
            case "run":
                mount = next(a for i, a in enumerate(args) if i and args[i - 1] == "-v")
                host_dir = Path(mount.rsplit(":", 1)[0])
                return self.handler("run", host_dir, args[-1])
            case "exec":
                return self.handler("exec", None, args[-1])
        raise AssertionError(f"unexpected docker call: {args}")

    @property
    def commands(self) -> list[str]:
        return [c[-1] for c in self.calls if c[0] in ("run", "exec")]


# ---------------------------------------------------------------------------
# Autouse fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_settings(monkeypatch, tmp_path_factory):
    """Each test starts from pure-default settings and a throwaway config path."""
    safe = make_settings()
    monkeypatch.setattr("codebox.config._settings", safe)
    config_dir = tmp_path_factory.mktemp("codebox-config")
    monkeypatch.setenv("CODEBOX_CONFIG", str(config_dir / "codebox.toml"))


# ---------------------------------------------------------------------------
# Reusable fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """A small project tree with a nested file."""
    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "file.txt").write_text("A")
    (root / "src" / "main.py").write_text("print('hi')\n")
    return root


@pytest.fixture
def temp_root(tmp_path: Path) -> Path:
    """Where copy-mode sessions put their temp dirs, so tests can inspect them."""
    root = tmp_path / "sessions"
    root.mkdir()
    return root


@pytest.fixture
def registry(project_dir: Path) -> StaticProjectRegistry:
    return StaticProjectRegistry(
        [
            image_project("plain", project_dir),
            image_project("isolated", project_dir, copy=True),
            container_project("boxed", project_dir),
            Project(name="targetless", host_path=project_dir, target=None),
        ]
    )


@pytest.fixture
def store(registry: StaticProjectRegistry, temp_root: Path) -> SessionStore:
    from codebox.config import SessionsConfig

    return SessionStore(registry, SessionsConfig(temp_root=str(temp_root)))
