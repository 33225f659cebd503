"""Caller-facing operations: what a protocol layer (MCP, HTTP, CLI) exposes.

Every method returns a :class:`ToolResult`.  Expected failures (unknown
project or session, unsafe path, a failing command) come back as
``is_error=True`` results with a readable message.  Genuinely exceptional
conditions, such as an I/O failure while copying a project for a new
session, propagate for the transport to translate.
"""

from __future__ import annotations

import functools
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import ParamSpec

from codebox.batch import execute_batch, format_results, write_batch_files
from codebox.config import Settings, get_settings
from codebox.docker import execute_command, resolve_target, run_in_target
from codebox.errors import CodeboxError, UnsafePathError, ValidationError
from codebox.files import read_project_file, write_project_file
from codebox.logger import logger
from codebox.registry import ProjectRegistry, SettingsProjectRegistry, is_project_valid
from codebox.sessions import SessionStore
from codebox.types import FileWrite, WriteMode

P = ParamSpec("P")


@dataclass(frozen=True)
class ToolResult:
    text: str
    is_error: bool = False


def _error(text: str) -> ToolResult:
    return ToolResult(text=f"Error: {text}", is_error=True)


def _logged(
    fn: Callable[P, Awaitable[ToolResult]],
) -> Callable[P, Awaitable[ToolResult]]:
    """Log each service call with its duration when ``[logging] debug`` is on."""

    @functools.wraps(fn)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> ToolResult:
        self = args[0]
        if not self.settings.logging.debug:  # type: ignore[attr-defined]
            return await fn(*args, **kwargs)
        start = time.monotonic()
        result: ToolResult | None = None
        try:
            result = await fn(*args, **kwargs)
            return result
        finally:
            logger.info(
                "Service call",
                method=fn.__name__,
                payload=kwargs or args[1:],
                is_error=result.is_error if result else None,
                raised=result is None,
                elapsed_ms=round((time.monotonic() - start) * 1000),
            )

    return wrapper


class CodeboxService:
    """Sessions, execution and file writes over one registry and store."""

    def __init__(
        self,
        registry: ProjectRegistry | None = None,
        store: SessionStore | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings if settings is not None else get_settings()
        self.registry = registry if registry is not None else SettingsProjectRegistry(settings)
        self.store = (
            store if store is not None else SessionStore(self.registry, self.settings.sessions)
        )

    # -- projects ------------------------------------------------------------

    @_logged
    async def list_projects(self) -> ToolResult:
        names = [p.name for p in self.registry.list_projects()]
        if not names:
            return ToolResult(
                "No projects are registered. Use 'codebox project add <dirname> "
                "--image <image_name>' to add projects."
            )
        return ToolResult("\n".join(names))

    # -- sessions ------------------------------------------------------------

    @_logged
    async def open_session(self, project_name: str) -> ToolResult:
        """Open a session; the result text is the new session id."""
        if not is_project_valid(self.registry, project_name):
            return _error(f"Invalid or unregistered project: {project_name}")
        session_id = await self.store.open_session(project_name)
        return ToolResult(session_id)

    @_logged
    async def close_session(self, session_id: str) -> ToolResult:
        if await self.store.close_session(session_id):
            return ToolResult(f"Session closed: {session_id}")
        return _error(f"Invalid session ID: {session_id}")

    # -- execution -----------------------------------------------------------

    @_logged
    async def execute(self, project_name: str, command: str) -> ToolResult:
        """Run *command* outside any session.

        Copy-mode image projects get a throwaway copy for the one command.
        """
        if not is_project_valid(self.registry, project_name):
            return _error(f"Invalid or unregistered project: {project_name}")
        try:
            result = await execute_command(
                self.registry,
                project_name,
                command,
                config=self.settings.container,
                sessions=self.settings.sessions,
            )
        except CodeboxError as exc:
            return _error(f"executing command: {exc}")
        return ToolResult(result.output)

    @_logged
    async def execute_in_session(self, session_id: str, command: str) -> ToolResult:
        session = self.store.get_session(session_id)
        if session is None:
            return _error(f"Invalid or expired project session id: {session_id}")
        try:
            project = self.registry.lookup(session.project_name)
            if project is None:
                return _error(f"Invalid or unregistered project: {session.project_name}")
            result = await run_in_target(
                resolve_target(project),
                command,
                session.working_dir,
                config=self.settings.container,
            )
        except CodeboxError as exc:
            return _error(f"executing command: {exc}")
        return ToolResult(result.output)

    @_logged
    async def execute_batch(
        self,
        session_id: str,
        commands: Sequence[str],
        stop_on_error: bool = True,
    ) -> ToolResult:
        try:
            results = await execute_batch(
                self.store,
                self.registry,
                session_id,
                commands,
                stop_on_error=stop_on_error,
                config=self.settings.container,
            )
        except CodeboxError as exc:
            return _error(str(exc))
        failed = any(not r.success for r in results)
        return ToolResult(format_results(results, "Command"), is_error=failed and stop_on_error)

    # -- files ---------------------------------------------------------------

    @_logged
    async def write_file(
        self,
        session_id: str,
        file_path: str,
        content: str,
        mode: WriteMode = "overwrite",
    ) -> ToolResult:
        working_dir = self.store.get_working_dir(session_id)
        if working_dir is None:
            return _error(f"Invalid or expired project session id: {session_id}")
        try:
            write_project_file(working_dir, file_path, content, mode)
        except UnsafePathError as exc:
            return _error(str(exc))
        except CodeboxError as exc:
            return _error(f"writing file: {exc}")
        verb = "appended to" if mode == "append" else "wrote"
        return ToolResult(f"Successfully {verb} file: {file_path}")

    @_logged
    async def read_file(self, session_id: str, file_path: str) -> ToolResult:
        working_dir = self.store.get_working_dir(session_id)
        if working_dir is None:
            return _error(f"Invalid or expired project session id: {session_id}")
        try:
            return ToolResult(read_project_file(working_dir, file_path))
        except ValidationError as exc:
            return _error(str(exc))
        except (FileNotFoundError, UnicodeDecodeError) as exc:
            return _error(str(exc))

    @_logged
    async def write_batch_files(
        self,
        session_id: str,
        files: Sequence[FileWrite],
        stop_on_error: bool = True,
    ) -> ToolResult:
        try:
            results = write_batch_files(self.store, session_id, files, stop_on_error)
        except ValidationError as exc:
            return _error(str(exc))
        failed = any(not r.success for r in results)
        return ToolResult(format_results(results, "File"), is_error=failed and stop_on_error)

    async def shutdown(self) -> None:
        """Reclaim every open session's temp directory."""
        await self.store.close_all()
