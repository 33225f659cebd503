"""Project registry: name to Project lookups over the settings file.

The registry is the only place raw ``ProjectConfig`` sections are turned
into ``Project`` descriptors with a tagged execution target.  Everything
downstream (sessions, execution, batches) depends on the
:class:`ProjectRegistry` protocol, so tests can inject an in-memory one.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

from codebox.config import ProjectConfig, Settings, get_settings
from codebox.logger import logger
from codebox.types import (
    DEFAULT_CONTAINER_PATH,
    ExecutionTarget,
    ExistingContainer,
    ImageTarget,
    Project,
)


@runtime_checkable
class ProjectRegistry(Protocol):
    def lookup(self, name: str) -> Project | None: ...
    def list_projects(self) -> list[Project]: ...


def project_from_config(
    name: str, config: ProjectConfig, default_path: str | None = None
) -> Project:
    """Resolve a config section into a Project.

    A container name takes precedence over an image.  When both are set the
    image is ignored and a warning is logged, since copy isolation then has
    no effect on execution either.
    """
    path = config.container_path or default_path or DEFAULT_CONTAINER_PATH
    target: ExecutionTarget | None = None

    if config.container_name:
        target = ExistingContainer(config.container_name, path)
        if config.docker_image:
            logger.warning(
                "Project configures both a container and an image; using the container",
                project=name,
                container=config.container_name,
                ignored_image=config.docker_image,
            )
    elif config.docker_image:
        target = ImageTarget(config.docker_image, path, config.network)

    return Project(
        name=name,
        host_path=Path(config.host_path),
        target=target,
        copy=config.copy_files,
    )


def is_project_valid(registry: ProjectRegistry, name: str) -> bool:
    """Registered and its host path is an existing directory."""
    project = registry.lookup(name)
    return project is not None and project.host_path.is_dir()


class SettingsProjectRegistry:
    """Registry backed by the ``[projects.*]`` sections of the settings file.

    Reads through :func:`get_settings` on every call unless a Settings object
    is pinned, so registry edits made via ``add_project_to_toml`` become
    visible without restarting.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings

    @property
    def settings(self) -> Settings:
        return self._settings if self._settings is not None else get_settings()

    def lookup(self, name: str) -> Project | None:
        s = self.settings
        config = s.projects.get(name)
        if config is None:
            return None
        return project_from_config(name, config, s.container.default_path)

    def list_projects(self) -> list[Project]:
        s = self.settings
        return [
            project_from_config(name, config, s.container.default_path)
            for name, config in s.projects.items()
        ]

    def find_by_host_path(self, directory: str | Path) -> Project | None:
        """Return the first project registered for exactly *directory*."""
        candidate = Path(directory).resolve()
        for project in self.list_projects():
            if project.host_path == candidate:
                return project
        return None


class StaticProjectRegistry:
    """In-memory registry for embedding callers and tests."""

    def __init__(self, projects: list[Project] | None = None) -> None:
        self._projects = {p.name: p for p in projects or []}

    def add(self, project: Project) -> None:
        self._projects[project.name] = project

    def lookup(self, name: str) -> Project | None:
        return self._projects.get(name)

    def list_projects(self) -> list[Project]:
        return list(self._projects.values())
