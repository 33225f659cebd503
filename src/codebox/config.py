"""Centralized configuration via Pydantic BaseSettings with TOML + dotenv sources.

Settings and the project registry live in one TOML file
(``~/.codespin/codebox.toml`` unless ``CODEBOX_CONFIG`` points elsewhere).
Environment variables override it using ``__`` as the nested delimiter
(e.g. ``CONTAINER__MAX_OUTPUT_SIZE``).

Priority (highest wins): init args > env vars > .env > codebox.toml

Usage::

    from codebox.config import get_settings

    s = get_settings()
    print(s.container.max_output_size)
    print(s.projects["my-app"].host_path)
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

from codebox.types import DEFAULT_CONTAINER_PATH

# ---------------------------------------------------------------------------
# Sub-models (each maps to a [section] in codebox.toml)
# ---------------------------------------------------------------------------


class _StrictModel(BaseModel):
    """Base for all config sub-models; unknown keys are rejected."""

    model_config = {"extra": "forbid", "populate_by_name": True}


class ContainerConfig(_StrictModel):
    cli: str = "docker"
    shell: str = "/bin/sh"
    default_path: str = DEFAULT_CONTAINER_PATH
    max_output_size: int = 10485760  # 10MB, stdout + stderr combined

    @field_validator("max_output_size")
    @classmethod
    def validate_max_output_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_output_size must be a positive integer")
        return v


class SessionsConfig(_StrictModel):
    temp_prefix: str = "codebox-"
    temp_root: str | None = None  # None → system temp dir


class LoggingConfig(_StrictModel):
    level: str = "INFO"
    debug: bool = False  # log every service call with timing

    @field_validator("level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.upper()


class ProjectConfig(_StrictModel):
    """One ``[projects.<name>]`` section.

    Exactly one of ``docker_image`` / ``container_name`` is expected.  When
    both are present the container wins (see registry.project_from_config).
    """

    host_path: str
    docker_image: str | None = None
    container_name: str | None = None
    container_path: str | None = None  # None → [container] default_path
    network: str | None = None
    copy_files: bool = Field(default=False, alias="copy")

    @field_validator("host_path")
    @classmethod
    def resolve_path(cls, v: str) -> str:
        p = Path(v).expanduser()
        if not p.is_absolute():
            p = (Path.cwd() / p).resolve()
        return str(p)


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


def config_path() -> Path:
    """Location of the settings/registry file."""
    override = os.environ.get("CODEBOX_CONFIG")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".codespin" / "codebox.toml"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    container: ContainerConfig = ContainerConfig()
    sessions: SessionsConfig = SessionsConfig()
    logging: LoggingConfig = LoggingConfig()
    projects: dict[str, ProjectConfig] = {}  # [projects.<name>]

    @model_validator(mode="after")
    def _validate_project_names(self) -> Settings:
        bad = [name for name in self.projects if not name.strip()]
        if bad:
            raise ValueError("Project names must not be empty")
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Priority: init > env vars > .env > codebox.toml > file secrets."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls, toml_file=config_path()),
            file_secret_settings,
        )


# ---------------------------------------------------------------------------
# Singleton access
# ---------------------------------------------------------------------------

_settings: Settings | None = None


def get_settings() -> Settings:
    """Lazy cached singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Clear the cached singleton (for tests and after registry edits)."""
    global _settings
    _settings = None


# ---------------------------------------------------------------------------
# Registry persistence
# ---------------------------------------------------------------------------


def add_project_to_toml(name: str, config: ProjectConfig, path: Path | None = None) -> bool:
    """Create or replace ``[projects.<name>]`` using tomlkit.

    Preserves existing comments and formatting elsewhere in the file.
    Returns True when an existing section was replaced.  Resets the
    settings cache so the next get_settings() picks the change up.
    """
    import tomlkit

    toml_path = path or config_path()
    doc = tomlkit.parse(toml_path.read_text()) if toml_path.exists() else tomlkit.document()

    if "projects" not in doc:
        doc.add("projects", tomlkit.table(is_super_table=True))

    projects = doc["projects"]
    replaced = name in projects  # type: ignore[operator]

    table = tomlkit.table()
    for key, value in config.model_dump(by_alias=True, exclude_none=True).items():
        table.add(key, value)
    projects[name] = table  # type: ignore[index]

    toml_path.parent.mkdir(parents=True, exist_ok=True)
    toml_path.write_text(tomlkit.dumps(doc))
    reset_settings()
    return replaced


def remove_project_from_toml(name: str, path: Path | None = None) -> bool:
    """Delete ``[projects.<name>]``; False when it was not there."""
    import tomlkit

    toml_path = path or config_path()
    if not toml_path.exists():
        return False

    doc = tomlkit.parse(toml_path.read_text())
    projects = doc.get("projects")
    if projects is None or name not in projects:
        return False

    del projects[name]
    toml_path.write_text(tomlkit.dumps(doc))
    reset_settings()
    return True
