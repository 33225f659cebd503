"""Entry point for `python -m codebox` / `codebox`.

Subcommands:
    codebox project add [DIR] --image IMG | --container NAME
    codebox project remove NAME_OR_PATH
    codebox project list
    codebox run PROJECT COMMAND
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from codebox.config import (
    ProjectConfig,
    add_project_to_toml,
    config_path,
    get_settings,
    remove_project_from_toml,
)
from codebox.logger import logger, set_level


def _warn_missing_runtime(container_name: str | None, network: str | None) -> None:
    """Registration succeeds regardless; commands fail later if these are absent."""
    from codebox.docker import is_container_running, network_exists

    async def _check() -> None:
        if container_name and not await is_container_running(container_name):
            print(
                f"Warning: Container '{container_name}' not found or not running. "
                "Commands will fail until container is available.",
                file=sys.stderr,
            )
        if network and not await network_exists(network):
            print(
                f"Warning: Network '{network}' not found. "
                "Commands may fail until network is available.",
                file=sys.stderr,
            )

    asyncio.run(_check())


def _project_add(args: argparse.Namespace) -> int:
    from codebox.path_guard import validate_directory

    if not args.image and not args.container:
        print(
            "Error: Either Docker image (--image) or container name (--container) is required",
            file=sys.stderr,
        )
        return 1

    project_path = Path(args.dirname).resolve()
    try:
        validate_directory(project_path)
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    name = args.name or project_path.name
    _warn_missing_runtime(args.container, args.network)

    existing = get_settings().projects.get(name)
    config = ProjectConfig(
        host_path=str(project_path),
        docker_image=args.image or (existing.docker_image if existing else None),
        container_name=args.container or (existing.container_name if existing else None),
        container_path=args.container_path or (existing.container_path if existing else None),
        network=args.network or (existing.network if existing else None),
        copy_files=args.copy,
    )
    replaced = add_project_to_toml(name, config)
    print(f"{'Updated' if replaced else 'Added'} project: {name}")
    return 0


def _project_remove(args: argparse.Namespace) -> int:
    target: str = args.target
    name = target
    # Anything with a separator is a path; match it against host paths
    if "/" in target or "\\" in target:
        from codebox.registry import SettingsProjectRegistry

        project = SettingsProjectRegistry().find_by_host_path(target)
        if project is None:
            print(f"Project not found for path: {Path(target).resolve()}")
            return 1
        name = project.name

    if remove_project_from_toml(name):
        print(f"Removed project: {name}")
        return 0
    print(f"Project with name '{name}' not found")
    return 1


def _project_list(_args: argparse.Namespace) -> int:
    projects = get_settings().projects
    if not projects:
        print(
            "No projects are registered. Use 'codebox project add <dirname> --image "
            "<image_name>' or 'codebox project add <dirname> --container "
            "<container_name>' to add projects."
        )
        return 0

    print("Registered projects:")
    print("-------------------")
    for index, (name, p) in enumerate(projects.items(), start=1):
        print(f"{index}. {name}")
        missing = "" if Path(p.host_path).is_dir() else " (missing)"
        print(f"   Path: {p.host_path}{missing}")
        if p.container_name:
            print(f"   Container: {p.container_name}")
        if p.docker_image:
            print(f"   Image: {p.docker_image}")
        if p.container_path:
            print(f"   Container path: {p.container_path}")
        if p.network:
            print(f"   Network: {p.network}")
        if p.copy_files:
            print("   Copy: enabled")
    print(f"\nConfig file: {config_path()}")
    return 0


def _run(args: argparse.Namespace) -> int:
    from codebox.service import CodeboxService

    async def _go() -> int:
        service = CodeboxService()
        result = await service.execute(args.project, args.command)
        stream = sys.stderr if result.is_error else sys.stdout
        print(result.text, file=stream)
        return 1 if result.is_error else 0

    return asyncio.run(_go())


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="codebox",
        description="Run commands against registered projects inside Docker",
    )
    sub = parser.add_subparsers(dest="command_group")

    project = sub.add_parser("project", help="Manage registered projects")
    project_sub = project.add_subparsers(dest="action")

    add = project_sub.add_parser("add", help="Register or update a project")
    add.add_argument("dirname", nargs="?", default=".", help="Project directory")
    add.add_argument("--image", help="Docker image to run commands in")
    add.add_argument("--container", help="Name of a running container to exec into")
    add.add_argument("--name", help="Project name (default: directory name)")
    add.add_argument("--container-path", help="Mount point inside the container")
    add.add_argument("--network", help="Docker network for image-based runs")
    add.add_argument(
        "--copy",
        action="store_true",
        help="Give each session an isolated copy of the project files",
    )

    remove = project_sub.add_parser("remove", help="Unregister a project")
    remove.add_argument("target", nargs="?", default=".", help="Project name or directory")

    project_sub.add_parser("list", help="List registered projects")

    run = sub.add_parser("run", help="Run a command in a project's container")
    run.add_argument("project")
    run.add_argument("command")

    args = parser.parse_args(argv)
    set_level(get_settings().logging.level)
    logger.debug("codebox invoked", args=vars(args))

    match (args.command_group, getattr(args, "action", None)):
        case ("project", "add"):
            code = _project_add(args)
        case ("project", "remove"):
            code = _project_remove(args)
        case ("project", "list"):
            code = _project_list(args)
        case ("run", _):
            code = _run(args)
        case _:
            parser.print_help()
            code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
