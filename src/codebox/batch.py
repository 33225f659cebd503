"""Sequential batches of commands and file writes within one session.

Both batch kinds share a stop-on-error policy: with ``stop_on_error`` the
first failure is recorded and everything after it is omitted from the
results; without it every item is attempted.

Commands never run concurrently.  Each one is its own ``sh -c`` process, so
the only state a later command sees from an earlier one is what was left on
the working directory's filesystem.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from pathlib import Path

from codebox.config import ContainerConfig
from codebox.docker import resolve_target, run_in_target
from codebox.errors import (
    CodeboxError,
    ProjectNotFoundError,
    SessionNotFoundError,
    UnsafePathError,
    WorkspaceIOError,
)
from codebox.files import write_project_file
from codebox.logger import logger
from codebox.path_guard import is_path_safe
from codebox.registry import ProjectRegistry
from codebox.sessions import SessionStore
from codebox.types import BatchItemResult, FileWrite

_SEPARATOR = "----------------------------------------\n"


def _session_working_dir(store: SessionStore, session_id: str) -> tuple[str, Path]:
    session = store.get_session(session_id)
    if session is None:
        raise SessionNotFoundError(session_id)
    return session.project_name, session.working_dir


async def execute_batch(
    store: SessionStore,
    registry: ProjectRegistry,
    session_id: str,
    commands: Sequence[str],
    stop_on_error: bool = True,
    config: ContainerConfig | None = None,
) -> list[BatchItemResult]:
    """Run *commands* one after another in the session's execution target.

    Raises (before any command runs):
        SessionNotFoundError: unknown or closed session.
        ProjectNotFoundError: the session's project was unregistered.
        NoExecutionTargetError: the project has neither image nor container.
    """
    project_name, working_dir = _session_working_dir(store, session_id)
    project = registry.lookup(project_name)
    if project is None:
        raise ProjectNotFoundError(project_name)
    target = resolve_target(project)

    results: list[BatchItemResult] = []
    for index, command in enumerate(commands):
        try:
            exec_result = await run_in_target(target, command, working_dir, config=config)
        except CodeboxError as exc:
            results.append(BatchItemResult(target=command, success=False, output=str(exc)))
            logger.info(
                "Batch command failed",
                session=session_id,
                index=index,
                stop_on_error=stop_on_error,
            )
            if stop_on_error:
                break
            continue
        results.append(BatchItemResult(target=command, success=True, output=exec_result.output))

    return results


def write_batch_files(
    store: SessionStore,
    session_id: str,
    files: Iterable[FileWrite],
    stop_on_error: bool = True,
) -> list[BatchItemResult]:
    """Write several files into the session's working directory.

    Phase 1 validates every path before anything is written.  With
    ``stop_on_error`` the first unsafe path aborts the whole batch with zero
    writes, and the results hold only that failure.  Phase 2 writes the
    files that passed validation, in order, applying the same policy to
    I/O failures.

    Raises SessionNotFoundError for unknown sessions.
    """
    _, working_dir = _session_working_dir(store, session_id)

    results: list[BatchItemResult] = []
    validated: list[FileWrite] = []

    for item in files:
        if is_path_safe(working_dir, item.file_path):
            validated.append(item)
            continue
        results.append(
            BatchItemResult(
                target=item.file_path,
                success=False,
                output=str(UnsafePathError(item.file_path)),
            )
        )
        if stop_on_error:
            logger.warning(
                "Batch write aborted on unsafe path",
                session=session_id,
                file_path=item.file_path,
            )
            return results

    for item in validated:
        try:
            write_project_file(working_dir, item.file_path, item.content, item.mode)
        except (WorkspaceIOError, UnsafePathError) as exc:
            results.append(BatchItemResult(target=item.file_path, success=False, output=str(exc)))
            if stop_on_error:
                break
            continue
        verb = "appended to" if item.mode == "append" else "wrote"
        results.append(
            BatchItemResult(target=item.file_path, success=True, output=f"Successfully {verb} file")
        )

    return results


def format_results(results: Iterable[BatchItemResult], kind: str = "Command") -> str:
    """Render batch results as the plain-text block returned to callers.

    *kind* is ``"Command"`` or ``"File"``; file results label their text
    ``Message:`` rather than ``Output:``.
    """
    body_label = "Message: " if kind == "File" else "Output:\n"
    blocks = [
        f"{kind}: {r.target}\n"
        f"Status: {'Success' if r.success else 'Failed'}\n"
        f"{body_label}{r.output}\n"
        f"{_SEPARATOR}"
        for r in results
    ]
    return "\n".join(blocks)
