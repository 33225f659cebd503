"""Filesystem operations behind copy-mode sessions.

Blocking helpers plus ``async`` wrappers that push the work onto a thread
via ``asyncio.to_thread`` so large copies don't stall the event loop.
"""

from __future__ import annotations

import asyncio
import re
import shutil
import tempfile
from pathlib import Path

_UNSAFE_PREFIX_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


def temp_prefix_for(base_prefix: str, project_name: str) -> str:
    """Build a mkdtemp prefix that embeds a filesystem-safe project name."""
    slug = _UNSAFE_PREFIX_CHARS.sub("-", project_name).strip("-") or "project"
    return f"{base_prefix}{slug}-session-"


def create_temp_directory(prefix: str = "codebox-", root: str | Path | None = None) -> Path:
    """Create a new, uniquely named directory (mode 0700) and return its path."""
    return Path(tempfile.mkdtemp(prefix=prefix, dir=str(root) if root else None))


def copy_directory(source: str | Path, target: str | Path) -> None:
    """Recursively copy the contents of *source* into *target*.

    *target* may already exist (e.g. a fresh temp dir).  Symlinks are
    followed, so the copy holds real files and never points back into the
    source tree.
    """
    shutil.copytree(source, target, symlinks=False, dirs_exist_ok=True)


def remove_directory(path: str | Path) -> None:
    """Recursively delete *path*; a missing directory is not an error."""
    p = Path(path)
    if p.exists():
        shutil.rmtree(p)


async def create_isolated_copy(
    source: str | Path, prefix: str, root: str | Path | None = None
) -> Path:
    """Create a temp dir and populate it with a copy of *source*.

    On failure the partially populated directory is removed (best-effort)
    and the original exception propagates.
    """
    temp_dir = await asyncio.to_thread(create_temp_directory, prefix, root)
    try:
        await asyncio.to_thread(copy_directory, source, temp_dir)
    except BaseException:
        await asyncio.to_thread(shutil.rmtree, temp_dir, True)
        raise
    return temp_dir


async def remove_directory_async(path: str | Path) -> None:
    await asyncio.to_thread(remove_directory, path)
