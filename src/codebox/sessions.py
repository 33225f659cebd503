"""Project sessions, a bounded-lifetime handle on a resolved working directory.

A SessionStore owns the session table.  Opening a session for a project
with ``copy = true`` gives it a private temp-dir copy of the project's
files; otherwise the session works directly on the project's host path.

Lifecycle per id: absent → open → closed.  A failed open leaves nothing
behind; a closed id is indistinguishable from one that never existed.

Temp directories are only reclaimed by close_session()/close_all().  If the
process dies without closing, they stay on disk.
"""

from __future__ import annotations

import uuid
from pathlib import Path

from codebox.config import SessionsConfig
from codebox.errors import ProjectNotFoundError, WorkspaceCopyError
from codebox.logger import logger
from codebox.registry import ProjectRegistry
from codebox.types import ExistingContainer, Session
from codebox.workdir import create_isolated_copy, remove_directory_async, temp_prefix_for


class SessionStore:
    """In-memory session table.

    Lookups and mutations of the table are synchronous; only the copy and
    removal of temp directories suspend.  Instances are independent, so
    several stores (e.g. one per test) can coexist.
    """

    def __init__(
        self,
        registry: ProjectRegistry,
        config: SessionsConfig | None = None,
    ) -> None:
        self.registry = registry
        self.config = config or SessionsConfig()
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    async def open_session(self, project_name: str) -> str:
        """Open a session for *project_name* and return its id.

        Raises:
            ProjectNotFoundError: the registry has no such project.
            WorkspaceCopyError: populating the isolated copy failed.  No
                session is registered and the partial copy is removed.
        """
        project = self.registry.lookup(project_name)
        if project is None:
            raise ProjectNotFoundError(project_name)

        session_id = uuid.uuid4().hex
        working_dir = project.host_path
        is_temp_dir = False

        if project.copy:
            if isinstance(project.target, ExistingContainer):
                logger.warning(
                    "Copy mode has no effect on commands for container projects",
                    project=project_name,
                    container=project.target.name,
                )
            prefix = temp_prefix_for(self.config.temp_prefix, project_name)
            try:
                working_dir = await create_isolated_copy(
                    project.host_path, prefix, self.config.temp_root
                )
            except OSError as exc:
                logger.error(
                    "Failed to create isolated copy",
                    project=project_name,
                    source=str(project.host_path),
                    error=str(exc),
                )
                raise WorkspaceCopyError(
                    f"Failed to copy project {project_name} into a temporary directory: {exc}"
                ) from exc
            is_temp_dir = True

        self._sessions[session_id] = Session(
            session_id=session_id,
            project_name=project_name,
            working_dir=working_dir,
            is_temp_dir=is_temp_dir,
        )
        logger.info(
            "Session opened",
            session=session_id,
            project=project_name,
            working_dir=str(working_dir),
            copy=is_temp_dir,
        )
        return session_id

    def get_session(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def get_working_dir(self, session_id: str) -> Path | None:
        session = self._sessions.get(session_id)
        return session.working_dir if session else None

    def get_project_name(self, session_id: str) -> str | None:
        session = self._sessions.get(session_id)
        return session.project_name if session else None

    def session_exists(self, session_id: str) -> bool:
        return session_id in self._sessions

    async def close_session(self, session_id: str) -> bool:
        """Close a session; False (and no side effects) for unknown ids.

        The record is dropped before the temp dir is removed, so concurrent
        lookups see the session as gone immediately.  Removal failures are
        logged and never raised.
        """
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False

        if session.is_temp_dir:
            try:
                await remove_directory_async(session.working_dir)
            except OSError as exc:
                logger.error(
                    "Error cleaning up temporary directory",
                    session=session_id,
                    path=str(session.working_dir),
                    error=str(exc),
                )

        logger.info("Session closed", session=session_id, project=session.project_name)
        return True

    async def close_all(self) -> int:
        """Close every open session during orderly shutdown."""
        ids = list(self._sessions)
        if ids:
            logger.info("Closing all sessions", count=len(ids))
        closed = 0
        for session_id in ids:
            if await self.close_session(session_id):
                closed += 1
        return closed
